"""
Unit tests for name normalization and prefix range bounds.
"""

import sys

import pytest

from catalog_engine.core.normalization import (
    NameStyle,
    apply_name,
    collapse_whitespace,
    normalize_email,
    normalize_name,
    search_key_for,
)
from catalog_engine.exceptions import ValidationRejectedError
from catalog_engine.repositories.base import prefix_upper_bound


class TestNormalizeName:
    """Test display names and search keys."""

    def test_sentence_case(self):
        """Test collapsing whitespace and capitalizing the first letter only."""
        result = normalize_name("  home   appliances\t", NameStyle.SENTENCE)
        assert result.display_name == "Home appliances"
        assert result.search_key == "home appliances"

    def test_title_case(self):
        """Test that every word is capitalized for users."""
        result = normalize_name("ana  maría LÓPEZ", NameStyle.TITLE)
        assert result.display_name == "Ana María López"
        assert result.search_key == "ana maría lópez"

    def test_upper_case(self):
        """Test role names."""
        assert normalize_name(" admin_role ", NameStyle.UPPER).display_name == "ADMIN_ROLE"

    def test_leading_digits_kept(self):
        """Test that the first letter is capitalized even after digits."""
        assert normalize_name("4k TVS").display_name == "4K tvs"
        assert normalize_name("(new) phones").display_name == "(New) phones"

    @pytest.mark.parametrize("raw", ["Laptops", "  laptops ", "LAPTOPS", "lAptops"])
    def test_idempotent(self, raw):
        """Test that normalizing a display name again changes nothing."""
        once = normalize_name(raw)
        twice = normalize_name(once.display_name)
        assert once == twice
        assert once.search_key == "laptops"

    @pytest.mark.parametrize("style", list(NameStyle))
    @pytest.mark.parametrize(
        "raw", ["ŉabc", "ßtraße", "éLAN", "ǆungla", "İstanbul", "ﬀoo bar", "aİb", "x ŉy"]
    )
    def test_idempotent_unicode(self, raw, style):
        """Test idempotence for letters whose case mappings change length."""
        once = normalize_name(raw, style)
        assert normalize_name(once.display_name, style) == once

    def test_expanding_title_case_left_alone(self):
        """Test that a letter is never replaced by its two-character title case."""
        assert normalize_name("ŉabc").display_name == "ŉabc"
        assert normalize_name("ßtraße").display_name == "ßtraße"
        assert normalize_name("éLAN").display_name == "Élan"

    @pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
    def test_empty_rejected(self, raw):
        """Test that names without visible characters are rejected."""
        with pytest.raises(ValidationRejectedError) as exc_info:
            normalize_name(raw)
        assert exc_info.value.field == "name"

    def test_non_string_rejected(self):
        """Test that only strings are names."""
        with pytest.raises(ValidationRejectedError):
            normalize_name(42)

    def test_search_key_for(self):
        """Test the search key shortcut."""
        assert search_key_for("  Home  APPLIANCES ") == "home appliances"

    def test_collapse_whitespace(self):
        """Test whitespace collapsing alone."""
        assert collapse_whitespace(" a \n b\tc ") == "a b c"


class TestApplyName:
    """Test payload normalization."""

    def test_name_and_key_set(self):
        """Test that the payload gets both the display name and the key."""
        payload = apply_name({"name": " big  TVs", "price": 3}, NameStyle.SENTENCE)
        assert payload == {"name": "Big tvs", "lower_name": "big tvs", "price": 3}

    def test_without_name(self):
        """Test that a payload without a name is left alone, minus any caller key."""
        payload = apply_name({"price": 3, "lower_name": "forged"}, NameStyle.SENTENCE)
        assert payload == {"price": 3}

    def test_input_not_mutated(self):
        """Test that the caller's dict is copied."""
        changes = {"name": "tv"}
        apply_name(changes, NameStyle.SENTENCE)
        assert changes == {"name": "tv"}


class TestNormalizeEmail:
    """Test email normalization."""

    def test_lower_and_strip(self):
        """Test that emails are trimmed and lower-cased."""
        assert normalize_email("  Ana@Example.COM ") == "ana@example.com"

    def test_empty_rejected(self):
        """Test that an empty email is rejected."""
        with pytest.raises(ValidationRejectedError) as exc_info:
            normalize_email(" ")
        assert exc_info.value.field == "email"


class TestPrefixUpperBound:
    """Test the exclusive upper bound of prefix ranges."""

    def test_increments_last_character(self):
        """Test the common case."""
        assert prefix_upper_bound("lap") == "laq"
        assert prefix_upper_bound("a z") == "a {"

    def test_range_is_exact(self):
        """Test that the range holds exactly the keys with the prefix."""
        prefix = "lap"
        upper = prefix_upper_bound(prefix)
        keys = ["la", "lap", "laptop", "lapz" + chr(0x10FFFF), "laq", "lao~", "lb"]
        in_range = [k for k in keys if prefix <= k < upper]
        assert in_range == [k for k in keys if k.startswith(prefix)]

    def test_skips_surrogates(self):
        """Test that the bound never lands inside the surrogate block."""
        assert prefix_upper_bound("a\ud7ff") == "a\ue000"

    def test_drops_maximal_characters(self):
        """Test that U+10FFFF cannot be incremented and is dropped."""
        top = chr(sys.maxunicode)
        assert prefix_upper_bound("a" + top) == "b"
        assert prefix_upper_bound("ab" + top + top) == "ac"

    def test_no_bound(self):
        """Test prefixes with no representable upper bound."""
        assert prefix_upper_bound("") is None
        assert prefix_upper_bound(chr(sys.maxunicode) * 2) is None
