"""
Name normalization.

Every name-bearing entity stores a display name and a lower-cased search
key derived from it. Both are produced here, before every write, so that
the pair is always consistent and re-normalizing a stored name is a no-op.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..exceptions import ValidationRejectedError


class NameStyle(str, Enum):
    """How the collapsed name is cased."""

    TITLE = "title"  # every word capitalized (users)
    SENTENCE = "sentence"  # only the first letter capitalized (categories, products)
    UPPER = "upper"  # whole name upper-cased (roles)


@dataclass(frozen=True)
class NormalizedName:
    display_name: str
    search_key: str


def collapse_whitespace(value: str) -> str:
    """Split on any whitespace, drop empty tokens and rejoin with single spaces."""
    return " ".join(value.split())


def _title_char(char: str) -> str:
    # Letters whose title case is two characters ('ß', 'ŉ') are kept as is
    titled = char.title()
    return titled if len(titled) == 1 else char


def _capitalize(token: str) -> str:
    # Title-case the first letter only; leading punctuation or digits are kept.
    for index, char in enumerate(token):
        if char.isalpha():
            return token[:index].lower() + _title_char(char) + token[index + 1 :].lower()
    return token.lower()


def normalize_name(name: str, style: NameStyle = NameStyle.SENTENCE) -> NormalizedName:
    """
    Normalize a name into its display form and search key.

    Args:
        name: Raw name as received from the caller
        style: Casing rule for the entity type

    Returns:
        NormalizedName with ``search_key == display_name.lower()``

    Raises:
        ValidationRejectedError: If the name is empty once whitespace is collapsed
    """
    if not isinstance(name, str):
        raise ValidationRejectedError("The name must be a string", field="name")

    collapsed = collapse_whitespace(name)
    if not collapsed:
        raise ValidationRejectedError("The name cannot be empty", field="name")

    if style is NameStyle.TITLE:
        display = " ".join(_capitalize(token) for token in collapsed.split(" "))
    elif style is NameStyle.UPPER:
        display = collapsed.upper()
    else:
        display = _capitalize(collapsed)

    return NormalizedName(display_name=display, search_key=display.lower())


def search_key_for(name: str, style: NameStyle = NameStyle.SENTENCE) -> str:
    """Shortcut for the search key of a raw name."""
    return normalize_name(name, style).search_key


def normalize_email(email: str) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationRejectedError("The email cannot be empty", field="email")
    return email.strip().lower()


def apply_name(changes: dict[str, Any], style: NameStyle) -> dict[str, Any]:
    """
    Return a copy of a write payload with its name normalized.

    When ``name`` is absent (or None) the payload is returned unchanged so the
    stored name and search key are left untouched.
    """
    updated = dict(changes)
    updated.pop("lower_name", None)
    if updated.get("name") is None:
        updated.pop("name", None)
        return updated

    normalized = normalize_name(updated["name"], style)
    updated["name"] = normalized.display_name
    updated["lower_name"] = normalized.search_key
    return updated
