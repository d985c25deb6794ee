from dataclasses import dataclass

import pytest

from models.cart import BackendCart, BackendCartItem
from models.user import LoginResult, Role, UserDetails
from services.auth_service import AuthService
from services.cart_service import CartService
from services.notifications import Notifier
from utils.crypto import ValueCipher
from utils.errors import AppError
from utils.session_store import MemoryStorage, SessionStore
from utils.tokens import TokenStore

USER_EMAIL = "amina@example.com"


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, hours: float = 0, seconds: float = 0) -> None:
        self.now += hours * 3600 + seconds


class FakeBackend:
    """In-memory stand-in for ApiGateway keeping a server-side cart."""

    def __init__(self):
        self.token = None
        self.lines = {}
        self.prices = {}
        self.next_cart_id = 100
        self.failures = {}
        self.calls = []
        self.details = UserDetails(
            first_name="Amina",
            last_name="Juma",
            logging_email=USER_EMAIL,
            verification_status="PENDING",
            roles=[Role(role_id=1, role_name="USER")],
        )

    def fail(self, method: str, error: AppError) -> None:
        self.failures[method] = error

    def _call(self, method: str, *args) -> None:
        self.calls.append((method, args))
        error = self.failures.get(method)
        if error is not None:
            raise error

    def set_auth_token(self, token):
        self.token = token

    def clear_auth_token(self):
        self.token = None

    async def login(self, email, password):
        self._call("login", email)
        return LoginResult(email=email, token="tok-123", role="USER")

    async def logout(self):
        self._call("logout")

    async def get_user_details(self):
        self._call("get_user_details")
        return self.details.model_copy(deep=True)

    async def send_email_otp(self, email):
        self._call("send_email_otp", email)
        return {"message": "OTP sent"}

    async def verify_email_otp(self, email, otp, role="USER"):
        self._call("verify_email_otp", email, otp, role)
        self.details.organizational_email = email
        return {"message": "verified"}

    async def get_user_cart(self):
        self._call("get_user_cart")
        items = [line.model_copy() for line in self.lines.values()]
        return BackendCart(items=items, total_items=sum(i.quantity for i in items))

    async def add_to_cart(self, product_id, quantity):
        self._call("add_to_cart", product_id, quantity)
        line = self.lines.get(product_id)
        if line:
            line.quantity += quantity
            return {}
        self.lines[product_id] = BackendCartItem(
            cart_id=self.next_cart_id,
            product_id=product_id,
            quantity=quantity,
            product_name=f"Product {product_id}",
            price=self.prices.get(product_id, 1000),
        )
        self.next_cart_id += 1
        return {}

    def _by_cart_id(self, cart_id):
        return next((pid for pid, line in self.lines.items() if line.cart_id == cart_id), None)

    async def update_cart_item(self, cart_id, product_id, quantity):
        self._call("update_cart_item", cart_id, product_id, quantity)
        pid = self._by_cart_id(cart_id)
        if pid is not None:
            self.lines[pid].quantity = quantity
        return {}

    async def remove_from_cart(self, cart_id):
        self._call("remove_from_cart", cart_id)
        pid = self._by_cart_id(cart_id)
        if pid is not None:
            del self.lines[pid]
        return {}

    async def clear_cart(self):
        self._call("clear_cart")
        self.lines.clear()
        return {}


@dataclass
class Harness:
    backend: FakeBackend
    clock: FakeClock
    store: SessionStore
    tokens: TokenStore
    notifier: Notifier
    auth: AuthService
    cart: CartService


def build_harness(backend=None, clock=None, storage=None) -> Harness:
    backend = backend or FakeBackend()
    clock = clock or FakeClock()
    store = SessionStore(storage if storage is not None else MemoryStorage(), clock=clock)
    tokens = TokenStore(store, backend, cipher=ValueCipher(None), clock=clock)
    notifier = Notifier()
    auth = AuthService(backend, store, tokens, notifier, clock=clock)
    cart = CartService(auth, backend, store, notifier, clock=clock)
    return Harness(backend, clock, store, tokens, notifier, auth, cart)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def harness(backend, clock):
    return build_harness(backend, clock)
