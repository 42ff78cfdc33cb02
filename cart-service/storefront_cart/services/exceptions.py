from enum import Enum
from typing import Optional


class CartErrorCode(str, Enum):
    INVALID_INPUT = "invalid_input"
    PRODUCT_NOT_FOUND = "product_not_found"
    INVALID_VARIANT = "invalid_variant"
    INSUFFICIENT_STOCK = "insufficient_stock"
    LINE_NOT_FOUND = "line_not_found"
    STORE_UNAVAILABLE = "store_unavailable"


class CartError(Exception):
    """Базовая ошибка корзины"""

    code = CartErrorCode.INVALID_INPUT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(CartError):
    code = CartErrorCode.INVALID_INPUT


class InvalidLineIdError(InvalidInputError, ValueError):
    """Некорректный составной ID строки"""


class ProductNotFoundError(CartError):
    code = CartErrorCode.PRODUCT_NOT_FOUND

    def __init__(self, product_id: str):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class InvalidVariantError(CartError):
    code = CartErrorCode.INVALID_VARIANT


class InsufficientStockError(CartError):
    code = CartErrorCode.INSUFFICIENT_STOCK

    def __init__(self, product_id: str, requested: int, available: int, in_cart: int = 0):
        if in_cart:
            message = f"Only {available} available (you have {in_cart} in cart)"
        else:
            message = f"Only {available} available (requested {requested})"
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.in_cart = in_cart


class LineNotFoundError(CartError):
    code = CartErrorCode.LINE_NOT_FOUND


class StoreUnavailableError(CartError):
    code = CartErrorCode.STORE_UNAVAILABLE

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class CatalogUnavailableError(StoreUnavailableError):
    """Каталог недоступен или ответил ошибкой"""


class CartConflictError(StoreUnavailableError):
    """Оптимистичная запись проиграла конкурентному изменению"""
