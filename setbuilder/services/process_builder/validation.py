"""Rule validation against process builder metadata."""

from collections.abc import Mapping
from typing import Any

from setbuilder.services.process_builder.types import (
    ProcessBuilderMetadata,
    Rules,
    ValidationResult,
)


def value_type(value: Any) -> str:
    """Map a runtime value onto the rule type vocabulary."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def validate_required_rules(metadata: ProcessBuilderMetadata, rules: Rules) -> ValidationResult:
    missing = [key for key in metadata.required_rules if rules.get(key) is None]
    if missing:
        return ValidationResult(
            valid=False,
            error=f"Missing required rules: {', '.join(missing)}",
            details={"missing": missing},
        )
    return ValidationResult(valid=True)


def validate_rule_types(rules: Rules) -> ValidationResult:
    """Check that every rule's declared type matches its value."""
    type_errors: list[str] = []
    for key, rule in rules.items():
        actual = value_type(rule.value)
        if rule.type != actual:
            type_errors.append(f"Rule '{key}': expected {rule.type}, got {actual}")

    if type_errors:
        return ValidationResult(
            valid=False,
            error=f"Type mismatches: {'; '.join(type_errors)}",
            details={"type_errors": type_errors},
        )
    return ValidationResult(valid=True)


def validate_limits(metadata: ProcessBuilderMetadata, rules: Rules) -> ValidationResult:
    limit_errors: list[str] = []
    for key, limit in metadata.limits.items():
        rule = rules.get(key)
        if rule is None or rule.type != "number" or value_type(rule.value) != "number":
            continue

        if limit.min is not None and rule.value < limit.min:
            limit_errors.append(f"Rule '{key}': value {rule.value} is below minimum {limit.min:g}")
        if limit.max is not None and rule.value > limit.max:
            limit_errors.append(f"Rule '{key}': value {rule.value} is above maximum {limit.max:g}")

    if limit_errors:
        return ValidationResult(
            valid=False,
            error=f"Limit violations: {'; '.join(limit_errors)}",
            details={"limit_errors": limit_errors},
        )
    return ValidationResult(valid=True)


def validate_rules(metadata: ProcessBuilderMetadata, rules: Rules) -> ValidationResult:
    """Run the required, type, and limit checks; first failure wins."""
    for result in (
        validate_required_rules(metadata, rules),
        validate_rule_types(rules),
        validate_limits(metadata, rules),
    ):
        if not result.valid:
            return result
    return ValidationResult(valid=True)
