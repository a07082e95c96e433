"""
Base domain model with camelCase JSON compatibility.

Provides automatic snake_case -> camelCase conversion for reporters.
Output-side domain models (findings, reports) inherit from BaseDomainModel.
"""

from __future__ import annotations

from dataclasses import fields
from enum import Enum
from typing import Any, Dict


def to_camel_case(snake_str: str) -> str:
    """
    Convert snake_case to camelCase.

    Examples:
        >>> to_camel_case("rule_id")
        'ruleId'
        >>> to_camel_case("statement_offset")
        'statementOffset'
    """
    components = snake_str.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def _to_json_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, BaseDomainModel):
        return value.to_json()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, frozenset, set)):
        items = [_to_json_value(item) for item in value]
        # Sets have no order of their own; keep JSON output stable.
        if isinstance(value, (frozenset, set)):
            items = sorted(items, key=str)
        return items
    if isinstance(value, dict):
        return {k: _to_json_value(v) for k, v in value.items()}
    return value


class BaseDomainModel:
    """
    Base class for output domain models (mixed into dataclasses).

    - to_json() serializes to camelCase
    - Enum values are serialized as their value
    - Tuples and sets become lists (sets sorted for stable output)
    """

    def to_json(self) -> Dict[str, Any]:
        """
        Serialize to camelCase JSON.

        Returns:
            Dictionary with camelCase keys and JSON-compatible values
        """
        return {
            to_camel_case(field.name): _to_json_value(getattr(self, field.name))
            for field in fields(self)
        }

    def to_dict(self) -> Dict[str, Any]:
        """Alias for to_json for compatibility."""
        return self.to_json()
