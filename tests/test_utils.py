"""
Unit tests for utility functions.
Tests simple, isolated utility functions without dependencies.
"""

from account_service.utils import normalize_email, dedupe_ids


class TestNormalizeEmail:
    """Test the normalize_email utility function."""

    def test_lowercase_conversion(self):
        """Test that email is converted to lowercase."""
        assert normalize_email("TEST@EXAMPLE.COM") == "test@example.com"
        assert normalize_email("Test@Example.Com") == "test@example.com"

    def test_whitespace_stripping(self):
        """Test that leading/trailing whitespace is removed."""
        assert normalize_email("  test@example.com  ") == "test@example.com"
        assert normalize_email("\ttest@example.com\n") == "test@example.com"

    def test_already_normalized(self):
        assert normalize_email("test@example.com") == "test@example.com"

    def test_preserves_special_characters(self):
        """Test that special characters in email are preserved."""
        assert normalize_email("Test+Tag@example.com") == "test+tag@example.com"
        assert normalize_email("test.name@example.com") == "test.name@example.com"


class TestDedupeIds:
    """Test the dedupe_ids utility function."""

    def test_removes_repeats_keeping_order(self):
        assert dedupe_ids([3, 1, 3, 2, 1]) == [3, 1, 2]

    def test_empty(self):
        assert dedupe_ids([]) == []

    def test_no_repeats_unchanged(self):
        assert dedupe_ids([5, 4, 6]) == [5, 4, 6]
