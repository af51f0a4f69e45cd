"""
Password Security Service
Handles password hashing and complexity rules
"""

import re
from typing import Optional, Tuple

from ..extensions import bcrypt

# Compared against when the e-mail is unknown so both paths cost one bcrypt check
_dummy_hash = None


class PasswordSecurityService:
    """Service for hashing and checking passwords"""

    @staticmethod
    def hash_password(password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plaintext password

        Returns:
            str: Hashed password
        """
        return bcrypt.generate_password_hash(password).decode('utf-8')

    @staticmethod
    def verify_password(password: str, password_hash: Optional[str]) -> bool:
        """
        Verify a password against its hash

        Args:
            password: Plaintext password
            password_hash: Hashed password (None burns a dummy comparison)

        Returns:
            bool: True if password matches, False otherwise
        """
        if not password_hash:
            global _dummy_hash
            if _dummy_hash is None:
                _dummy_hash = bcrypt.generate_password_hash("unknown-account").decode("utf-8")
            bcrypt.check_password_hash(_dummy_hash, password or "")
            return False
        try:
            return bcrypt.check_password_hash(password_hash, password or "")
        except ValueError:
            # Malformed stored hash
            return False

    @staticmethod
    def is_password_strong(password: str) -> Tuple[bool, Optional[str]]:
        """
        Check if password meets complexity requirements

        Args:
            password: Plaintext password to check

        Returns:
            Tuple[bool, Optional[str]]: (is_strong, error_message)
            - is_strong: True if password meets requirements, False otherwise
            - error_message: Error message if password is weak, None otherwise
        """
        if len(password) < 8:
            return False, "Password must be at least 8 characters long"
        if not re.search(r"[A-Z]", password):
            return False, "Password must contain at least one uppercase letter"
        if not re.search(r"[a-z]", password):
            return False, "Password must contain at least one lowercase letter"
        if not re.search(r"[0-9]", password):
            return False, "Password must contain at least one number"
        if not re.search(r"[!@#$%^&*(),.?\":{}|<>]", password):
            return False, "Password must contain at least one special character"
        return True, None
