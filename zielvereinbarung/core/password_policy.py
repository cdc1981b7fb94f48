"""
Password Policy enforcement

12+ characters with uppercase, lowercase, digit and special character.
"""
from typing import List, Tuple


class PasswordPolicy:
    """Enforces password complexity requirements."""

    # Length requirements
    MIN_LENGTH = 12
    # bcrypt only accepts up to 72 bytes of input
    MAX_BYTES = 72

    @classmethod
    def validate(cls, password: str) -> Tuple[bool, List[str]]:
        """
        Validate password against policy.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []

        if len(password) < cls.MIN_LENGTH:
            errors.append(f"Password must be at least {cls.MIN_LENGTH} characters")

        if len(password.encode("utf-8")) > cls.MAX_BYTES:
            errors.append(f"Password must be at most {cls.MAX_BYTES} bytes")

        if not any("A" <= c <= "Z" for c in password):
            errors.append("Password must contain at least one uppercase letter")

        if not any("a" <= c <= "z" for c in password):
            errors.append("Password must contain at least one lowercase letter")

        if not any("0" <= c <= "9" for c in password):
            errors.append("Password must contain at least one number")

        # Anything outside [A-Za-z0-9] counts as special
        if not any(not c.isascii() or not c.isalnum() for c in password):
            errors.append("Password must contain at least one special character")

        return len(errors) == 0, errors
