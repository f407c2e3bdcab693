import hashlib
from functools import lru_cache

import bcrypt


def hash_password(plain_password: str, rounds: int = 12) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    # bcrypt expects bytes; the salt is embedded in the returned hash
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False


@lru_cache(maxsize=None)
def dummy_hash(rounds: int = 12) -> str:
    """Hash compared against when no account matches, so both paths cost the same."""
    return hash_password("not-a-real-password", rounds=rounds)


def hash_token(raw: str) -> str:
    # SHA-256 is fine for hashing high-entropy random tokens and codes
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
