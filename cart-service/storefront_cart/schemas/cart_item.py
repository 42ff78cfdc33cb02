from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CartLine(BaseModel):
    """Строка корзины, уникальна по (product_id, size, color)"""

    product_id: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    added_at: datetime

    def matches(self, product_id: str, size: Optional[str], color: Optional[str]) -> bool:
        return self.product_id == product_id and self.size == size and self.color == color


class CartItemCreate(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = 1
    size: Optional[str] = None
    color: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int


class CartLineView(BaseModel):
    """Строка корзины с ценой для отображения"""

    id: str
    product_id: str
    name: str
    slug: str = ""
    image_url: str = ""

    price: Decimal
    original_price: Optional[Decimal] = None

    quantity: int
    max_quantity: int

    size: Optional[str] = None
    color: Optional[str] = None
    color_hex: Optional[str] = None
    variant_key: str
    sku: Optional[str] = None

    stock: int
    is_in_stock: bool
    subtotal: Decimal

    shipping_cost: Decimal = Decimal("0")
    has_free_shipping: bool = False

    can_increase_quantity: bool
    can_decrease_quantity: bool

    added_at: datetime
