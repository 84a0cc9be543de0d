"""Tests for pulling location names out of chat text."""

from __future__ import annotations

import re

import pytest

from fastmap.extraction import LocationExtractor, extract_locations


def test_extracts_trigger_and_suffix_names() -> None:
    text = "The party arrived at Silver Lake near Oakwood."

    assert extract_locations(text) == {"Silver Lake", "Oakwood"}


def test_extraction_is_idempotent() -> None:
    extractor = LocationExtractor()
    text = "They rode towards Ravenholt and later visited the Temple of Dawn."

    first = extractor.extract(text)
    second = extractor.extract(text)

    assert first == second
    assert "Temple of Dawn" in first


@pytest.mark.parametrize("text", [None, 42, "", "   ", "nothing to see here"])
def test_malformed_or_empty_input_yields_no_candidates(text: object) -> None:
    assert extract_locations(text) == frozenset()


def test_suffix_pattern_matches_without_trigger() -> None:
    assert "Stormhaven" in extract_locations("Stormhaven was quiet that night.")


def test_custom_patterns_require_capture_group() -> None:
    with pytest.raises(ValueError):
        LocationExtractor([r"\bCastle\b"])


def test_custom_patterns_replace_defaults() -> None:
    extractor = LocationExtractor([re.compile(r"\bto ([A-Z]\w+)")])

    assert extractor.extract("We sailed to Brighthollow near Oakwood.") == {"Brighthollow"}


def test_overlong_candidates_are_dropped() -> None:
    extractor = LocationExtractor([r"\bat (\w+)"])

    assert extractor.extract("at " + "x" * 41) == frozenset()

