"""
Input validation utilities for worksnap.
"""

from typing import Any, List, Optional, Union, Callable, Type
from dataclasses import dataclass
from pathlib import Path
import re

from .errors import ValidationError, PreconditionError


@dataclass
class ValidationRule:
    """Represents a validation rule."""
    name: str
    validator: Callable[[Any], bool]
    message: str
    code: str


class Validator:
    """Fluent validator for a single named value."""

    def __init__(self, field_name: str, error_class: Type[ValidationError] = ValidationError):
        self.field_name = field_name
        self.error_class = error_class
        self.rules: List[ValidationRule] = []

    def add_rule(self, rule: ValidationRule) -> 'Validator':
        """Add a validation rule."""
        self.rules.append(rule)
        return self

    def required(self, message: Optional[str] = None) -> 'Validator':
        """Require field to be present and not None."""
        rule = ValidationRule(
            name="required",
            validator=lambda x: x is not None,
            message=message or f"{self.field_name} is required",
            code="REQUIRED"
        )
        return self.add_rule(rule)

    def not_empty(self, message: Optional[str] = None) -> 'Validator':
        """Require field to not be empty or whitespace."""
        def is_not_empty(value: Any) -> bool:
            if value is None:
                return False
            if isinstance(value, str):
                return bool(value.strip())
            if isinstance(value, (list, dict, tuple, set)):
                return len(value) > 0
            return True

        rule = ValidationRule(
            name="not_empty",
            validator=is_not_empty,
            message=message or f"{self.field_name} cannot be empty",
            code="NOT_EMPTY"
        )
        return self.add_rule(rule)

    def pattern(self, regex: Union[str, re.Pattern], message: Optional[str] = None) -> 'Validator':
        """Require field to match regex pattern."""
        if isinstance(regex, str):
            regex = re.compile(regex)

        rule = ValidationRule(
            name="pattern",
            validator=lambda x: x is None or bool(regex.fullmatch(str(x))),
            message=message or f"{self.field_name} format is invalid",
            code="PATTERN"
        )
        return self.add_rule(rule)

    def type_check(self, expected_type: Union[Type, tuple], message: Optional[str] = None) -> 'Validator':
        """Require field to be of specific type."""
        names = (
            " or ".join(t.__name__ for t in expected_type)
            if isinstance(expected_type, tuple) else expected_type.__name__
        )
        rule = ValidationRule(
            name="type_check",
            validator=lambda x: x is None or isinstance(x, expected_type),
            message=message or f"{self.field_name} must be of type {names}",
            code="TYPE_CHECK"
        )
        return self.add_rule(rule)

    def custom(self, validator_fn: Callable[[Any], bool],
               message: str, code: str = "CUSTOM") -> 'Validator':
        """Add custom validation rule."""
        rule = ValidationRule(
            name="custom",
            validator=validator_fn,
            message=message,
            code=code
        )
        return self.add_rule(rule)

    def validate(self, value: Any) -> None:
        """Validate value against all rules, raising on the first failure."""
        for rule in self.rules:
            if not rule.validator(value):
                raise self.error_class(
                    field=self.field_name,
                    value=value,
                    constraint=rule.message
                )


# Object names git accepts: full or abbreviated hex ids.
_OBJECT_ID = r'^[0-9a-fA-F]{4,64}$'


def checkpoint_hash_validator(field_name: str = "hash") -> Validator:
    """Checkpoint (tree hash) validator."""
    return (Validator(field_name, PreconditionError)
            .required()
            .type_check(str)
            .not_empty()
            .pattern(_OBJECT_ID, f"{field_name} must be a hexadecimal object id"))


def project_id_validator(field_name: str = "project_id") -> Validator:
    """Project identity validator; the id becomes a directory name."""
    return (Validator(field_name, PreconditionError)
            .required()
            .type_check(str)
            .not_empty()
            .pattern(r'^[A-Za-z0-9._-]+$', f"{field_name} contains invalid characters")
            .custom(lambda x: x not in (".", ".."), f"{field_name} cannot be '.' or '..'"))


def worktree_validator(field_name: str = "worktree") -> Validator:
    """Working directory validator."""
    return (Validator(field_name, PreconditionError)
            .required()
            .type_check((str, Path))
            .custom(lambda x: Path(x).is_absolute(), f"{field_name} must be an absolute path"))


__all__ = [
    'ValidationRule',
    'Validator',
    'checkpoint_hash_validator',
    'project_id_validator',
    'worktree_validator',
]
