from dataclasses import dataclass

from config.env import SESSION_STORE_PATH
from services.auth_service import AuthService
from services.cart_service import CartService
from services.gateway import ApiGateway
from services.notifications import Notifier
from utils.session_store import JsonFileStorage, SessionStore
from utils.tokens import TokenStore


@dataclass
class Storefront:
    gateway: ApiGateway
    store: SessionStore
    tokens: TokenStore
    notifier: Notifier
    auth: AuthService
    cart: CartService

    async def start(self) -> bool:
        """Restore a previous session; the cart loads through the auth listener."""
        restored = await self.auth.restore_session()
        if not restored:
            await self.cart.load_cart()
        return restored

    def close(self) -> None:
        self.cart.close()
        self.store.flush_pending_writes()


def build_storefront(storage=None, *, gateway: ApiGateway | None = None, notifier: Notifier | None = None) -> Storefront:
    """One container of each kind per session, dependencies passed explicitly."""
    if storage is None:
        storage = JsonFileStorage(SESSION_STORE_PATH)

    store = SessionStore(storage)
    gateway = gateway or ApiGateway()
    notifier = notifier or Notifier()
    tokens = TokenStore(store, gateway)
    gateway.token_loader = tokens.get

    auth = AuthService(gateway, store, tokens, notifier)
    cart = CartService(auth, gateway, store, notifier)
    return Storefront(gateway, store, tokens, notifier, auth, cart)
