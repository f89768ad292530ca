import json
from functools import lru_cache

from cryptography.fernet import Fernet

from market.core.config import settings


@lru_cache(maxsize=1)
def _fernet() -> Fernet:
    return Fernet(settings.outbox_encryption_key.get_secret_value().encode("utf-8"))


def encrypt_json(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    token = _fernet().encrypt(raw)
    return token.decode("utf-8")


def decrypt_json(token: str) -> dict:
    raw = _fernet().decrypt(token.encode("utf-8"))
    return json.loads(raw.decode("utf-8"))
