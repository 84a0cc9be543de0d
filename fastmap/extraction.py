"""Location name extraction from free-form chat text."""

from __future__ import annotations

import re
from typing import Pattern, Sequence

_TRIGGERS = (
    r"in|at|near|towards|reach(?:es|ed)?|arriv(?:es|ed|ing)\s+(?:at|in)"
    r"|visit(?:s|ed|ing)?|enter(?:s|ed|ing)?|discovered|found"
    r"|approaching|leaving"
)
_PLACE_NAME = r"[A-Z][a-zA-Z']+(?:[ ](?:of[ ](?:the[ ])?)?[A-Z][a-zA-Z']+){0,3}"
_SUFFIXES = (
    "wood|dale|burg|heim|port|haven|gate|ford|crest|fall|peak|shore|keep"
    "|hall|crypt|grove|moor|wich|bury|stead|ton"
)

DEFAULT_PATTERNS: tuple[Pattern[str], ...] = (
    re.compile(rf"\b(?:{_TRIGGERS})\s+(?:the\s+)?({_PLACE_NAME})"),
    re.compile(rf"\b([A-Z][a-z]+(?:{_SUFFIXES}))\b"),
)

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 40


class LocationExtractor:
    """Collects candidate location names from a block of text.

    Every configured pattern is applied with :func:`re.finditer` so no match
    position leaks between calls; group 1 of each match is a candidate.
    """

    def __init__(self, patterns: Sequence[Pattern[str] | str] | None = None) -> None:
        compiled: list[Pattern[str]] = []
        for pattern in patterns if patterns is not None else DEFAULT_PATTERNS:
            if isinstance(pattern, str):
                pattern = re.compile(pattern)
            if pattern.groups < 1:
                raise ValueError(
                    f"Location pattern {pattern.pattern!r} needs a capture group"
                )
            compiled.append(pattern)
        self.patterns: tuple[Pattern[str], ...] = tuple(compiled)

    def extract(self, text: object) -> frozenset[str]:
        if not isinstance(text, str) or not text.strip():
            return frozenset()
        found: set[str] = set()
        for pattern in self.patterns:
            for match in pattern.finditer(text):
                candidate = match.group(1)
                if not candidate:
                    continue
                candidate = candidate.strip()
                if MIN_NAME_LENGTH <= len(candidate) <= MAX_NAME_LENGTH:
                    found.add(candidate)
        return frozenset(found)


_DEFAULT_EXTRACTOR = LocationExtractor()


def extract_locations(text: object) -> frozenset[str]:
    """Extract candidate names using the default patterns."""

    return _DEFAULT_EXTRACTOR.extract(text)


__all__ = [
    "DEFAULT_PATTERNS",
    "LocationExtractor",
    "extract_locations",
]
