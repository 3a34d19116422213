"""Referral code generation."""

import secrets

# Uppercase letters and digits without look-alikes (0/O, 1/I)
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DEFAULT_CODE_LENGTH = 8


def generate_referral_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Generate a readable referral code.

    Characters are drawn independently and uniformly.
    Format: ABC2XYZ7 (8 chars by default)
    """
    if length < 1:
        raise ValueError("Code length must be positive")
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))
