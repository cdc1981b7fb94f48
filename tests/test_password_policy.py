"""
Tests for password complexity rules.
"""
import pytest

from zielvereinbarung.core.password_policy import PasswordPolicy


class TestPasswordPolicy:
    def test_strong_password_passes(self):
        valid, errors = PasswordPolicy.validate("Sicheres-Passwort-2024")
        assert valid is True
        assert errors == []

    @pytest.mark.parametrize(
        "password, fragment",
        [
            ("Kurz-1a", "at least 12"),
            ("nur-kleinbuchstaben-1", "uppercase"),
            ("NUR-GROSSBUCHSTABEN-1", "lowercase"),
            ("Keine-Ziffern-hier", "number"),
            ("OhneSonderzeichen2024", "special"),
        ],
    )
    def test_each_rule_reported(self, password, fragment):
        valid, errors = PasswordPolicy.validate(password)
        assert valid is False
        assert any(fragment in e for e in errors)

    def test_too_long(self):
        valid, errors = PasswordPolicy.validate("Aa1!" + "x" * 76)
        assert valid is False
        assert any("at most 72 bytes" in e for e in errors)

    def test_limit_counts_bytes_not_characters(self):
        # Each umlaut is two bytes in UTF-8
        assert PasswordPolicy.validate("Aa1!" + "ü" * 34)[0] is True
        assert PasswordPolicy.validate("Aa1!" + "ü" * 35)[0] is False

    def test_exactly_72_bytes_passes(self):
        assert PasswordPolicy.validate("Aa1!" + "x" * 68)[0] is True

    def test_umlaut_counts_as_special(self):
        valid, _ = PasswordPolicy.validate("Passwortmitü2024")
        assert valid is True

    def test_multiple_errors_collected(self):
        valid, errors = PasswordPolicy.validate("abc")
        assert valid is False
        assert len(errors) == 4
