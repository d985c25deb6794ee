from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from config.constants import CART_STORAGE_KEY, DEFAULT_CURRENCY, PLACEHOLDER_IMAGE
from models.cart import BackendCart, CartItem


@dataclass(frozen=True)
class CartSummary:
    item_count: int = 0
    subtotal: float = 0
    original_total: float = 0
    savings: float = 0
    has_verified_expats: bool = False
    is_empty: bool = True
    expat_count: int = 0
    currencies: List[str] = field(default_factory=list)
    primary_currency: str = DEFAULT_CURRENCY
    has_mixed_currencies: bool = False
    selected_items_data: List[CartItem] = field(default_factory=list)
    selected_subtotal: float = 0
    selected_original_total: float = 0
    selected_savings: float = 0


def _totals(items: Iterable[CartItem]):
    subtotal = 0
    original_total = 0
    for item in items:
        subtotal += item.price * item.quantity
        original_total += (item.original_price or item.price) * item.quantity
    return subtotal, original_total


def calculate_cart_summary(items: List[CartItem], selected_ids: Iterable[str] = ()) -> CartSummary:
    selected_ids = set(selected_ids)
    subtotal, original_total = _totals(items)

    currencies = []
    for item in items:
        currency = item.currency or DEFAULT_CURRENCY
        if currency not in currencies:
            currencies.append(currency)

    selected = [item for item in items if item.id in selected_ids]
    selected_subtotal, selected_original_total = _totals(selected)

    return CartSummary(
        item_count=sum(item.quantity for item in items),
        subtotal=subtotal,
        original_total=original_total,
        savings=original_total - subtotal,
        has_verified_expats=any(item.verified for item in items),
        is_empty=not items,
        expat_count=len({item.expat_id for item in items}),
        currencies=currencies,
        primary_currency=currencies[0] if currencies else DEFAULT_CURRENCY,
        has_mixed_currencies=len(currencies) > 1,
        selected_items_data=selected,
        selected_subtotal=selected_subtotal,
        selected_original_total=selected_original_total,
        selected_savings=selected_original_total - selected_subtotal,
    )


def backend_cart_to_items(cart: BackendCart) -> List[CartItem]:
    # the cart endpoint carries no seller or media data
    return [
        CartItem(
            id=str(line.product_id),
            cart_id=line.cart_id,
            title=line.product_name,
            price=line.price,
            original_price=line.price,
            image=PLACEHOLDER_IMAGE,
            quantity=line.quantity,
            currency=line.currency or DEFAULT_CURRENCY,
        )
        for line in cart.items
    ]


def product_to_cart_item(product: dict, quantity: int = 1) -> CartItem:
    return CartItem(
        id=str(product["id"]),
        title=product["title"],
        price=product["price"],
        original_price=product.get("original_price") or product.get("originalPrice") or product["price"],
        image=product.get("image") or PLACEHOLDER_IMAGE,
        condition=product.get("condition") or "used",
        expat_id=product.get("expat_id") or product.get("expatId") or "unknown",
        expat_name=product.get("expat_name") or product.get("expatName") or "Unknown Seller",
        quantity=quantity,
        category=product.get("category") or "general",
        location=product.get("location") or "Unknown",
        verified=bool(product.get("verified")),
        currency=product.get("currency") or DEFAULT_CURRENCY,
    )


def group_items_by_expat(items: List[CartItem]) -> Dict[str, List[CartItem]]:
    groups: Dict[str, List[CartItem]] = {}
    for item in items:
        groups.setdefault(item.expat_id, []).append(item)
    return groups


def format_currency(amount: float, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{amount:,.0f} {currency}"


def get_cart_storage_key(user_id: str | None = None) -> str:
    return f"{CART_STORAGE_KEY}_{user_id}" if user_id else CART_STORAGE_KEY
