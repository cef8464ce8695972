from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Return whether the password matches and, if the stored hash is outdated, its replacement."""
    return password_hash.verify_and_update(raw_password, hashed_password)
