import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from config.constants import (
    CART_EXPIRY_HOURS,
    CART_PERSIST_DEBOUNCE_MS,
    MAX_CART_ITEMS,
    MAX_ITEM_QUANTITY,
)
from models.cart import CartItem
from models.user import User
from utils.cart import (
    CartSummary,
    backend_cart_to_items,
    calculate_cart_summary,
    get_cart_storage_key,
    group_items_by_expat,
    product_to_cart_item,
)
from utils.errors import AppError, create_server_error, create_validation_error

logger = logging.getLogger(__name__)

# fields the cart endpoint does not return; carried over from the last known item
DISPLAY_FIELDS = (
    "image", "images", "condition", "expat_id", "expat_name",
    "category", "location", "verified", "original_price",
)


@dataclass
class CartState:
    items: List[CartItem] = field(default_factory=list)
    is_loading: bool = True
    error: Optional[str] = None
    is_initialized: bool = False
    selected_items: List[str] = field(default_factory=list)
    requires_login: bool = False


class CartService:
    """
    Read-through mirror of the backend cart.

    Every mutation is followed by a full re-fetch that replaces local items;
    nothing is merged optimistically. Snapshots go to the session store keyed
    by user id and are only read back when the backend cannot be reached.
    """

    def __init__(self, auth, gateway, store, notifier, *, clock=time.time):
        self.auth = auth
        self.gateway = gateway
        self.store = store
        self.notifier = notifier
        self._clock = clock
        self.state = CartState()
        self._user_id: Optional[str] = None
        self._summary_key = None
        self._summary: Optional[CartSummary] = None
        self._unsubscribe = auth.subscribe(self._on_auth_event)

    # =========================
    # AUTH EVENTS
    # =========================

    async def _on_auth_event(self, event: str, user: Optional[User]) -> None:
        if event in ("login", "restore"):
            await self.load_cart()
        elif event == "logout":
            self._clear_local()

    def _clear_local(self) -> None:
        self.store.flush_pending_writes()
        previous = self._user_id
        self.state = CartState(is_loading=False, is_initialized=True)
        self._user_id = None
        if previous:
            self.store.remove_item(get_cart_storage_key(previous))

    def _require_login(self, description: str = "Please login to modify your cart.") -> bool:
        if self.auth.is_logged_in:
            return True
        self.notifier.error("Login required", description)
        return False

    # =========================
    # PERSISTENCE
    # =========================

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _persist(self) -> None:
        if not self._user_id:
            return
        self.store.set_item_debounced(
            get_cart_storage_key(self._user_id),
            {
                "items": [item.model_dump(mode="json", by_alias=True) for item in self.state.items],
                "selectedItems": list(self.state.selected_items),
                "timestamp": self._now_ms(),
                "userId": self._user_id,
            },
            CART_PERSIST_DEBOUNCE_MS,
        )

    def _load_snapshot(self, user_id: str) -> Optional[CartState]:
        key = get_cart_storage_key(user_id)
        snapshot = self.store.get_item(key)
        if snapshot is None:
            return None
        if not isinstance(snapshot, dict):
            self.store.remove_item(key)
            return None

        if snapshot.get("userId") != user_id:
            logger.info("CART_SNAPSHOT_OWNER_MISMATCH user=%s", user_id)
            self.store.remove_item(key)
            return None

        timestamp = snapshot.get("timestamp")
        if not isinstance(timestamp, (int, float)):
            self.store.remove_item(key)
            return None
        age_ms = self._now_ms() - timestamp
        if age_ms < 0 or age_ms >= CART_EXPIRY_HOURS * 60 * 60 * 1000:
            logger.info("CART_SNAPSHOT_EXPIRED user=%s", user_id)
            self.store.remove_item(key)
            return None

        raw_items = snapshot.get("items")
        if not isinstance(raw_items, list):
            self.store.remove_item(key)
            return None
        try:
            items = [CartItem.model_validate(raw) for raw in raw_items]
        except ValidationError:
            logger.warning("CART_SNAPSHOT_INVALID user=%s", user_id)
            self.store.remove_item(key)
            return None

        ids = {item.id for item in items}
        selected = [i for i in snapshot.get("selectedItems") or [] if i in ids]
        return CartState(items=items, selected_items=selected, is_loading=False, is_initialized=True)

    # =========================
    # BACKEND SYNC
    # =========================

    async def _refetch(self, known: Optional[List[CartItem]] = None) -> None:
        cart = await self.gateway.get_user_cart()
        try:
            fetched = backend_cart_to_items(cart)
        except ValidationError as e:
            raise create_server_error("Malformed cart response", details=str(e)) from e

        if self.auth.user is not None:
            self._user_id = self.auth.user.id

        previous: Dict[str, CartItem] = {item.id: item for item in self.state.items}
        for item in known or []:
            previous[item.id] = item

        items = []
        for fresh in fetched:
            old = previous.get(fresh.id)
            if old is not None:
                fresh = fresh.model_copy(update={name: getattr(old, name) for name in DISPLAY_FIELDS})
            items.append(fresh)

        ids = {item.id for item in items}
        self.state.items = items
        self.state.selected_items = [i for i in self.state.selected_items if i in ids]
        self.state.error = None
        self.state.requires_login = False
        self._persist()

    def _handle_failure(self, error: AppError, fallback: str) -> None:
        if error.is_auth_redirect:
            logger.info("CART_LOGIN_REQUIRED")
            self.state.requires_login = True
            return

        message = error.message or fallback
        self.state.error = message
        logger.warning("CART_OPERATION_FAILED type=%s message=%s", error.type.value, message)
        self.notifier.error("Error", message)

    async def load_cart(self) -> None:
        user = self.auth.user
        if not self.auth.is_logged_in or user is None:
            self.state = CartState(is_loading=False, is_initialized=True)
            self._user_id = None
            return

        self._user_id = user.id
        self.state.is_loading = True
        try:
            await self._refetch()
        except AppError as e:
            if e.is_auth_redirect:
                self.state.requires_login = True

            restored = self._load_snapshot(user.id)
            if restored is not None:
                logger.info("CART_RESTORED_FROM_SNAPSHOT user=%s items=%s", user.id, len(restored.items))
                restored.requires_login = self.state.requires_login
                self.state = restored
                return

            self.state = CartState(
                is_loading=False,
                is_initialized=True,
                error="Failed to load cart",
                requires_login=self.state.requires_login,
            )
            return

        self.state.is_loading = False
        self.state.is_initialized = True

    async def sync_cart(self) -> bool:
        if not self.auth.is_logged_in:
            return False

        try:
            await self._refetch()
        except AppError as e:
            if e.is_auth_redirect:
                self.state.requires_login = True
                return False
            logger.warning("CART_SYNC_FAILED type=%s", e.type.value)
            self.notifier.error("Sync error", "Failed to sync cart with server. Some changes may not be saved.")
            return False
        return True

    # =========================
    # MUTATIONS
    # =========================

    @staticmethod
    def _product_id(item_id: str) -> int:
        try:
            return int(item_id)
        except (TypeError, ValueError):
            raise create_validation_error(f"Invalid product id: {item_id}") from None

    async def add_to_cart(self, item: Union[CartItem, dict], quantity: int = 1) -> bool:
        if not self._require_login("Please login to add items to your cart."):
            return False

        if quantity < 1:
            self.notifier.error("Invalid quantity", "Quantity must be at least 1.")
            return False

        if isinstance(item, dict):
            item = product_to_cart_item(item, quantity=quantity)

        existing = self.get_cart_item(item.id)
        if (existing.quantity if existing else 0) + quantity > MAX_ITEM_QUANTITY:
            self.notifier.error("Quantity limit", f"Maximum {MAX_ITEM_QUANTITY} units per item.")
            return False
        if existing is None and len(self.state.items) >= MAX_CART_ITEMS:
            self.notifier.error("Cart full", f"You can have at most {MAX_CART_ITEMS} items in your cart.")
            return False

        self.state.is_loading = True
        try:
            await self.gateway.add_to_cart(self._product_id(item.id), quantity)
            await self._refetch(known=[item])
        except AppError as e:
            self._handle_failure(e, "Failed to add item to cart. Please try again.")
            return False
        finally:
            self.state.is_loading = False

        self.notifier.toast("Added to cart", f"{item.title} has been added to your cart.")
        return True

    async def remove_from_cart(self, item_id: str) -> bool:
        if not self._require_login():
            return False

        item = self.get_cart_item(item_id)
        self.state.is_loading = True
        try:
            cart_id = item.cart_id if item and item.cart_id is not None else self._product_id(item_id)
            await self.gateway.remove_from_cart(cart_id)
            await self._refetch()
        except AppError as e:
            self._handle_failure(e, "Failed to remove item from cart. Please try again.")
            return False
        finally:
            self.state.is_loading = False

        self.notifier.toast("Item removed", "Item has been removed from your cart.")
        return True

    async def update_quantity(self, item_id: str, quantity: int) -> bool:
        if not self._require_login():
            return False

        if quantity <= 0:
            return await self.remove_from_cart(item_id)

        if quantity > MAX_ITEM_QUANTITY:
            self.notifier.error("Quantity limit", f"Maximum {MAX_ITEM_QUANTITY} units per item.")
            return False

        item = self.get_cart_item(item_id)
        if item is None:
            self.notifier.error("Item not found", "This item is no longer in your cart.")
            return False

        self.state.is_loading = True
        try:
            product_id = self._product_id(item.id)
            cart_id = item.cart_id if item.cart_id is not None else product_id
            await self.gateway.update_cart_item(cart_id, product_id, quantity)
            await self._refetch()
        except AppError as e:
            self._handle_failure(e, "Failed to update quantity. Please try again.")
            return False
        finally:
            self.state.is_loading = False

        return True

    async def clear_cart(self) -> bool:
        if not self._require_login():
            return False

        self.state.is_loading = True
        try:
            await self.gateway.clear_cart()
            await self._refetch()
        except AppError as e:
            self._handle_failure(e, "Failed to clear cart. Please try again.")
            return False
        finally:
            self.state.is_loading = False

        self.notifier.toast("Cart cleared", "All items have been removed from your cart.")
        return True

    async def validate_cart_items(self) -> List[str]:
        """Re-sync with the backend and return ids that are gone or unavailable."""
        before = {item.id for item in self.state.items}
        if not await self.sync_cart():
            return []

        after = {item.id: item for item in self.state.items}
        unavailable = sorted(before - set(after))
        unavailable += [item_id for item_id, item in after.items() if not item.is_available]

        if unavailable:
            self.notifier.error(
                "Items unavailable",
                f"{len(unavailable)} item(s) in your cart are no longer available.",
            )
        return unavailable

    # =========================
    # SELECTION
    # =========================

    def toggle_item_selection(self, item_id: str) -> None:
        selected = self.state.selected_items
        if item_id in selected:
            self.state.selected_items = [i for i in selected if i != item_id]
        else:
            self.state.selected_items = selected + [item_id]
        self._persist()

    def select_all_items(self) -> None:
        self.state.selected_items = [item.id for item in self.state.items]
        self._persist()

    def deselect_all_items(self) -> None:
        self.state.selected_items = []
        self._persist()

    # =========================
    # LOOKUPS
    # =========================

    def get_cart_item(self, item_id: str) -> Optional[CartItem]:
        return next((item for item in self.state.items if item.id == item_id), None)

    def is_in_cart(self, item_id: str) -> bool:
        return self.get_cart_item(item_id) is not None

    def get_item_quantity(self, item_id: str) -> int:
        item = self.get_cart_item(item_id)
        return item.quantity if item else 0

    def contact_expat(self, item_id: str) -> Optional[str]:
        item = self.get_cart_item(item_id)
        if item is None:
            self.notifier.error("Item not found", "Unable to find the item to contact expat.")
            return None

        safe = "-_.!~*'()"
        return f"/messages?expat={quote(item.expat_name, safe=safe)}&product={quote(item.title, safe=safe)}"

    def group_by_expat(self) -> Dict[str, List[CartItem]]:
        return group_items_by_expat(self.state.items)

    # =========================
    # SUMMARY
    # =========================

    @property
    def summary(self) -> CartSummary:
        items = self.state.items
        key = (items, tuple(self.state.selected_items))
        if self._summary is None or self._summary_key[0] is not items or self._summary_key[1] != key[1]:
            self._summary = calculate_cart_summary(items, self.state.selected_items)
            self._summary_key = key
        return self._summary

    @property
    def items(self) -> List[CartItem]:
        return self.state.items

    @property
    def item_count(self) -> int:
        return self.summary.item_count

    @property
    def subtotal(self) -> float:
        return self.summary.subtotal

    @property
    def original_total(self) -> float:
        return self.summary.original_total

    @property
    def savings(self) -> float:
        return self.summary.savings

    @property
    def has_verified_expats(self) -> bool:
        return self.summary.has_verified_expats

    @property
    def is_empty(self) -> bool:
        return self.summary.is_empty

    @property
    def expat_count(self) -> int:
        return self.summary.expat_count

    @property
    def currencies(self) -> List[str]:
        return self.summary.currencies

    @property
    def primary_currency(self) -> str:
        return self.summary.primary_currency

    @property
    def has_mixed_currencies(self) -> bool:
        return self.summary.has_mixed_currencies

    @property
    def selected_items_data(self) -> List[CartItem]:
        return self.summary.selected_items_data

    @property
    def selected_subtotal(self) -> float:
        return self.summary.selected_subtotal

    @property
    def selected_original_total(self) -> float:
        return self.summary.selected_original_total

    @property
    def selected_savings(self) -> float:
        return self.summary.selected_savings

    # =========================
    # TEARDOWN
    # =========================

    def close(self) -> None:
        self.store.flush_pending_writes()
        self._unsubscribe()
