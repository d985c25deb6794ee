from pydantic import Field
from typing import List, Optional

from config.constants import DEFAULT_CURRENCY, PLACEHOLDER_IMAGE
from models.user import CamelModel


class CartItem(CamelModel):
    id: str
    cart_id: Optional[int] = None
    title: str
    price: float
    original_price: Optional[float] = None
    image: str = PLACEHOLDER_IMAGE
    images: List[str] = []
    condition: str = "used"
    expat_id: str = "unknown"
    expat_name: str = "Unknown Seller"
    quantity: int = Field(1, ge=1)
    category: str = "general"
    location: str = "Unknown"
    verified: bool = False
    currency: str = DEFAULT_CURRENCY
    is_available: bool = True
    selected: bool = False


class BackendCartItem(CamelModel):
    cart_id: Optional[int] = None
    product_id: int
    quantity: int
    product_name: str
    price: float
    currency: str = DEFAULT_CURRENCY
    subtotal: Optional[float] = None


class BackendCart(CamelModel):
    items: List[BackendCartItem] = []
    total_items: int = 0
    total_price: float = 0
    currency: str = DEFAULT_CURRENCY
