"""
Cache key builders. Single place for the key format.

Key components (corporation, project, order identifiers) must not contain
KEY_SEPARATOR. Tuples whose components all normalize to "" collapse to the
same key.
"""

from typing import Optional, Sequence, Union

Identifier = Optional[Union[str, int]]

KEY_SEPARATOR = "::"


def normalize(value: Identifier) -> str:
    """Return "" for None, otherwise the string form of the value."""
    if value is None:
        return ""
    return str(value)


def compose_key(*parts: Identifier) -> str:
    """Join normalized parts in order with KEY_SEPARATOR."""
    return KEY_SEPARATOR.join(normalize(part) for part in parts)


def resource_key(scope_parts: Sequence[Identifier], resource_id: Identifier) -> str:
    """Scope key extended with the resource identifier."""
    return compose_key(*scope_parts, resource_id)
