import logging
import time

from jose import jwt
from jose.exceptions import JWTError

from config.constants import TOKEN_EXPIRY_HOURS, TOKEN_EXPIRY_KEY, TOKEN_KEY
from utils.crypto import ValueCipher

logger = logging.getLogger(__name__)


def token_expiry_ms(token: str, now_ms: int) -> int:
    """Local expiry: TOKEN_EXPIRY_HOURS from now, capped by the JWT exp claim."""
    expiry = now_ms + TOKEN_EXPIRY_HOURS * 60 * 60 * 1000
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return expiry

    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        expiry = min(expiry, int(exp * 1000))
    return expiry


class TokenStore:
    def __init__(self, store, gateway, *, cipher: ValueCipher | None = None, clock=time.time):
        self.store = store
        self.gateway = gateway
        self.cipher = cipher or ValueCipher()
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def set(self, token: str) -> None:
        self.store.set_item_immediate(TOKEN_KEY, self.cipher.encrypt(token))
        self.store.set_item_immediate(TOKEN_EXPIRY_KEY, token_expiry_ms(token, self._now_ms()))
        self.gateway.set_auth_token(token)

    def get(self) -> str | None:
        stored = self.store.get_item(TOKEN_KEY)
        if not stored:
            return None

        expiry = self.store.get_item(TOKEN_EXPIRY_KEY)
        if expiry is not None and self._now_ms() > int(expiry):
            logger.info("AUTH_TOKEN_EXPIRED")
            self.clear()
            return None

        token = self.cipher.decrypt(stored)
        if token is None:
            logger.warning("AUTH_TOKEN_UNREADABLE")
            self.clear()
        return token

    def clear(self) -> None:
        self.store.remove_item(TOKEN_KEY)
        self.store.remove_item(TOKEN_EXPIRY_KEY)
        self.gateway.clear_auth_token()

    def initialize_from_storage(self) -> str | None:
        token = self.get()
        if token:
            self.gateway.set_auth_token(token)
        return token
