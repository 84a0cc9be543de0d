"""Payload validation for persisted map records."""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Real
from typing import Any, ClassVar, Mapping, Sequence


class ModelValidationError(ValueError):
    """Raised when a stored payload cannot be turned back into a model."""

    def __init__(self, model: type[Any], errors: Sequence[str]) -> None:
        self.model = model
        self.errors = list(errors)
        message = ", ".join(self.errors) if self.errors else "invalid payload"
        super().__init__(f"{model.__name__} validation failed: {message}")


@dataclass(frozen=True)
class FieldSpec:
    expected: Any
    description: str
    required: bool = True
    allow_none: bool = False


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _matches_type(value: Any, expected: Any) -> bool:
    if expected is Any:
        return True
    if isinstance(expected, tuple):
        return any(_matches_type(value, part) for part in expected)
    if isinstance(expected, type):
        if expected is int:
            return isinstance(value, int) and not isinstance(value, bool)
        if expected is float:
            return isinstance(value, Real) and not isinstance(value, bool)
        return isinstance(value, expected)
    if callable(expected):
        try:
            return bool(expected(value))
        except (TypeError, ValueError):
            return False
    return True


class ModelValidator:
    """Base class for payload validators attached to models."""

    model: ClassVar[type[Any]]
    fields: ClassVar[Mapping[str, FieldSpec]]

    @classmethod
    def validate(cls, data: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ModelValidationError(
                cls.model, ["Payload must be a mapping of field names to values"]
            )

        errors: list[str] = []
        normalized: dict[str, Any] = {}
        for name, spec in cls.fields.items():
            if name not in data:
                if spec.required:
                    errors.append(f"Missing required field '{name}' ({spec.description})")
                continue
            value = data[name]
            if value is None:
                if not spec.allow_none:
                    errors.append(f"Field '{name}' cannot be null")
                    continue
                normalized[name] = value
                continue
            if not _matches_type(value, spec.expected):
                errors.append(
                    f"Field '{name}' expected {spec.description}, "
                    f"received {type(value).__name__}"
                )
                continue
            normalized[name] = value

        if errors:
            raise ModelValidationError(cls.model, errors)
        return normalized


__all__ = [
    "FieldSpec",
    "ModelValidationError",
    "ModelValidator",
    "is_non_empty_str",
]
