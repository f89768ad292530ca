import base64
import hashlib
import secrets
from dataclasses import dataclass

import bcrypt

from market.core.config import settings


@dataclass(frozen=True)
class OpaqueToken:
    plain: str
    hashed: str


def generate_token() -> OpaqueToken:
    # 32 random bytes -> 256 bits of entropy
    plain = secrets.token_urlsafe(32)
    return OpaqueToken(plain=plain, hashed=hash_token(plain))


def hash_token(plain: str) -> str:
    # Pepper protects against rainbow tables if DB leaks.
    salted = (plain + settings.session_secret.get_secret_value()).encode("utf-8")
    digest = hashlib.sha256(salted).digest()
    return base64.b64encode(digest).decode("utf-8")


# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


def password_too_long(raw: str) -> bool:
    return len(raw.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(raw: str) -> str:
    if password_too_long(raw):
        raise ValueError(f"password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(raw.encode("utf-8"), salt).decode("utf-8")


def verify_password(raw: str, password_hash: str) -> bool:
    if password_too_long(raw):
        return False
    # bcrypt.checkpw compares in constant time
    return bcrypt.checkpw(raw.encode("utf-8"), password_hash.encode("utf-8"))
