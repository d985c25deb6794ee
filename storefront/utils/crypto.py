import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from config.env import SESSION_ENCRYPTION_KEY


def _build_fernet(secret: str) -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
    return Fernet(key)


class ValueCipher:
    """
    Encrypts values persisted in client storage.
    Without a secret it passes values through unchanged.
    """

    def __init__(self, secret: str | None = SESSION_ENCRYPTION_KEY):
        secret = (secret or "").strip()
        self._fernet = _build_fernet(secret) if secret else None

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, value: str) -> str:
        if not self._fernet:
            return value
        return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str | None:
        if not self._fernet:
            return token
        try:
            raw = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken:
            return None
        return raw.decode("utf-8")
