from __future__ import annotations

from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    if len(raw_password) < 8:
        raise ValueError('Password must be at least 8 characters')
    return password_hash.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Return (valid, replacement_hash); the replacement is set when the stored hash is outdated."""
    return password_hash.verify_and_update(raw_password, hashed_password)
