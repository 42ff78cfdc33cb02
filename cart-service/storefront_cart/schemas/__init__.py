from .cart import Cart, CartActionResult, CartItemIssue, CartSummary, CartValidationResult
from .cart_item import CartItemCreate, CartItemUpdate, CartLine, CartLineView
from .product import Product, ProductVariant

__all__ = [
    "Cart", "CartActionResult", "CartItemIssue", "CartSummary", "CartValidationResult",
    "CartItemCreate", "CartItemUpdate", "CartLine", "CartLineView",
    "Product", "ProductVariant",
]
