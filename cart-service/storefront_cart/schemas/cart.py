from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from ..services.exceptions import CartErrorCode
from .cart_item import CartLine, CartLineView

CART_SCHEMA_VERSION = 1


class Cart(BaseModel):
    user_id: str
    lines: List[CartLine] = []
    schema_version: int = CART_SCHEMA_VERSION
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find_line(self, product_id: str, size: Optional[str], color: Optional[str]) -> Optional[CartLine]:
        for line in self.lines:
            if line.matches(product_id, size, color):
                return line
        return None

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


class CartSummary(BaseModel):
    items: List[CartLineView] = []
    total_items: int = 0

    subtotal: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    shipping_method: str = "Standard"
    has_free_shipping: bool = False
    free_shipping_threshold: Decimal = Decimal("50000")
    amount_to_free_shipping: Decimal = Decimal("50000")
    total: Decimal = Decimal("0")

    is_empty: bool = True
    has_out_of_stock_items: bool = False
    can_checkout: bool = False


class CartIssueType(str, Enum):
    OUT_OF_STOCK = "OutOfStock"
    NO_LONGER_AVAILABLE = "NoLongerAvailable"


class CartItemIssue(BaseModel):
    cart_item_id: str
    product_id: str
    product_name: str = ""
    issue_type: CartIssueType
    message: str


class CartValidationResult(BaseModel):
    is_valid: bool = True
    errors: List[str] = []
    warnings: List[str] = []
    item_issues: List[CartItemIssue] = []


class CartActionResult(BaseModel):
    """Результат изменения корзины; истинен при успехе"""

    success: bool
    error: Optional[CartErrorCode] = None
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: Optional[str] = None) -> "CartActionResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, error: CartErrorCode, message: str) -> "CartActionResult":
        return cls(success=False, error=error, message=message)
