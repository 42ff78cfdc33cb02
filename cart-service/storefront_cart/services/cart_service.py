import asyncio
from typing import Dict, Iterable, List, Optional
import logging

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import Settings, settings as default_settings
from ..repositories.cart_store import CartStore
from ..schemas.cart import CartActionResult, CartItemIssue, CartIssueType, CartSummary, CartValidationResult
from ..schemas.cart_item import CartLine
from ..schemas.product import Product
from . import cart_lines
from .catalog_client import CatalogClient, ProductCatalog
from .count_cache import CartCountCache
from .exceptions import (
    CartConflictError,
    CartError,
    CartErrorCode,
    InsufficientStockError,
    InvalidInputError,
    InvalidLineIdError,
    LineNotFoundError,
    ProductNotFoundError,
    StoreUnavailableError,
)
from .line_id import LINE_ID_SEPARATOR, LineIdParts, build_composite_id, parse_composite_id
from .summary import build_line_view, build_summary, empty_summary
from .variant_key import VARIANT_SEPARATOR, build_variant_key, normalize_selection, require_valid_variant

logger = logging.getLogger(__name__)


class CartService:
    """Сервис корзины пользователя.

    Публичные методы не бросают исключений: ошибка логируется и превращается
    в неуспешный CartActionResult, пустую сводку, False или 0.
    """

    def __init__(
            self,
            store: CartStore,
            catalog: Optional[ProductCatalog] = None,
            count_cache: Optional[CartCountCache] = None,
            settings: Optional[Settings] = None,
    ):
        self.settings = settings if settings is not None else default_settings
        self.store = store
        self.catalog = catalog if catalog is not None else CatalogClient()
        if count_cache is None:
            count_cache = CartCountCache(self.settings.count_cache_max_entries)
        self.count_cache = count_cache

    # ---- изменения корзины ----

    async def add_to_cart(
            self,
            user_id: str,
            product_id: str,
            quantity: int = 1,
            size: Optional[str] = None,
            color: Optional[str] = None,
    ) -> CartActionResult:
        """Добавить вариант товара; если он уже в корзине, увеличить количество"""
        try:
            self._require_ids(user_id, product_id)
            if quantity <= 0:
                raise InvalidInputError(f"Quantity must be greater than 0, got {quantity}")

            size = normalize_selection(size)
            color = normalize_selection(color)
            self._require_selection(size, color)
            logger.info(f"Adding to cart: user={user_id}, product={product_id}, qty={quantity}, size={size}, color={color}")

            product = await self._get_product(product_id)
            variant_key = require_valid_variant(product, size, color)
            available = product.get_variant_stock(variant_key)

            await self.store.ensure_exists(user_id)
            cart = await self.store.get(user_id)
            existing = cart.find_line(product_id, size, color) if cart else None
            in_cart = existing.quantity if existing else 0

            # проверяем итоговое количество, а не только запрошенное
            if in_cart + quantity > available:
                raise InsufficientStockError(product_id, quantity, available, in_cart)

            try:
                lines = await self.store.add_line(user_id, product_id, quantity, size, color)
            finally:
                self.count_cache.invalidate(user_id)

            logger.info(f"Product {product_id} ({variant_key}) added to cart of user {user_id}, {len(lines)} line(s)")
            return CartActionResult.ok(f"{product.name} added to cart")

        except CartError as e:
            return self._failure("add to cart", user_id, e)
        except Exception as e:
            return self._unexpected("add to cart", user_id, e)

    async def update_quantity(self, user_id: str, line_id: str, new_quantity: int) -> CartActionResult:
        """Изменить количество строки по составному ID"""
        try:
            self._require_ids(user_id)
            parts = self._parse_line_id(user_id, line_id)

            if new_quantity <= 0:
                return await self.remove_from_cart(user_id, parts.product_id, parts.size, parts.color)

            logger.info(f"Updating cart line {line_id} to quantity {new_quantity}")

            product = await self._get_product(parts.product_id)
            available = product.get_variant_stock(build_variant_key(parts.size, parts.color))
            if new_quantity > available:
                raise InsufficientStockError(parts.product_id, new_quantity, available)

            try:
                await self._write_quantity(user_id, parts, new_quantity)
            finally:
                self.count_cache.invalidate(user_id)

            logger.info(f"Cart line {line_id} now has quantity {new_quantity}")
            return CartActionResult.ok()

        except CartError as e:
            return self._failure("update cart line", user_id, e)
        except Exception as e:
            return self._unexpected("update cart line", user_id, e)

    async def remove_from_cart(
            self,
            user_id: str,
            product_id: str,
            size: Optional[str] = None,
            color: Optional[str] = None,
    ) -> CartActionResult:
        """Удалить строку; отсутствующая строка тоже считается успехом"""
        try:
            self._require_ids(user_id, product_id)
            size = normalize_selection(size)
            color = normalize_selection(color)

            try:
                lines = await self.store.remove_line(user_id, product_id, size, color)
            finally:
                self.count_cache.invalidate(user_id)

            logger.info(f"Removed product {product_id} (size={size}, color={color}) from cart of user {user_id}, {len(lines)} line(s) left")
            return CartActionResult.ok()

        except CartError as e:
            return self._failure("remove from cart", user_id, e)
        except Exception as e:
            return self._unexpected("remove from cart", user_id, e)

    async def remove_from_cart_by_id(self, user_id: str, line_id: str) -> CartActionResult:
        try:
            self._require_ids(user_id)
            parts = self._parse_line_id(user_id, line_id)
        except CartError as e:
            return self._failure("remove from cart", user_id, e)

        return await self.remove_from_cart(user_id, parts.product_id, parts.size, parts.color)

    async def clear_cart(self, user_id: str) -> CartActionResult:
        try:
            self._require_ids(user_id)
            logger.info(f"Clearing cart for user {user_id}")

            try:
                await self.store.ensure_exists(user_id)
                await self.store.replace(user_id, [])
            finally:
                self.count_cache.invalidate(user_id)

            return CartActionResult.ok()

        except CartError as e:
            return self._failure("clear cart", user_id, e)
        except Exception as e:
            return self._unexpected("clear cart", user_id, e)

    # ---- чтение ----

    async def get_user_cart(self, user_id: str) -> List[CartLine]:
        try:
            self._require_ids(user_id)
            return await self._read_lines(user_id)
        except Exception as e:
            logger.error(f"Failed to get cart for user {user_id}: {e}")
            return []

    async def get_cart_summary(self, user_id: str) -> CartSummary:
        """Сводка корзины с актуальными ценами из каталога.

        Строки, товар которых исчез из каталога, в сводку не попадают,
        но остаются в хранилище, пока пользователь их не удалит.
        """
        threshold = self.settings.free_shipping_threshold
        try:
            self._require_ids(user_id)
            lines = await self._read_lines(user_id)
            if not lines:
                return empty_summary(threshold)

            products = await self._fetch_products(line.product_id for line in lines)

            items = []
            for line in lines:
                product = products.get(line.product_id)
                if product is None:
                    logger.warning(f"Product not found for cart line: {line.product_id}")
                    continue
                try:
                    items.append(build_line_view(user_id, line, product))
                except InvalidLineIdError as e:
                    logger.warning(f"Skipping unaddressable cart line of user {user_id}: {e.message}")

            return build_summary(items, threshold, self.settings.standard_shipping_cost)

        except Exception as e:
            logger.error(f"Failed to get cart summary for user {user_id}: {e}")
            return empty_summary(threshold)

    async def validate_cart(self, user_id: str) -> CartValidationResult:
        """Проверка строк корзины по текущему каталогу, хранилище не меняется"""
        result = CartValidationResult(is_valid=True)

        try:
            self._require_ids(user_id)
            lines = await self._read_lines(user_id)

            if not lines:
                result.warnings.append("Your cart is empty")
                return result

            products = await self._fetch_products(line.product_id for line in lines)

            for line in lines:
                line_id = self._line_id_or_none(user_id, line)
                product = products.get(line.product_id)

                if product is None:
                    result.item_issues.append(CartItemIssue(
                        cart_item_id=line_id or "",
                        product_id=line.product_id,
                        issue_type=CartIssueType.NO_LONGER_AVAILABLE,
                        message="This product is no longer available",
                    ))
                    continue

                if line_id is None:
                    result.item_issues.append(CartItemIssue(
                        cart_item_id="",
                        product_id=line.product_id,
                        product_name=product.name,
                        issue_type=CartIssueType.NO_LONGER_AVAILABLE,
                        message=f"{product.name} - the selected option is no longer available",
                    ))
                    continue

                if not product.is_active:
                    result.item_issues.append(CartItemIssue(
                        cart_item_id=line_id,
                        product_id=line.product_id,
                        product_name=product.name,
                        issue_type=CartIssueType.NO_LONGER_AVAILABLE,
                        message=f"{product.name} is no longer available",
                    ))

                variant_key = build_variant_key(line.size, line.color)
                if product.has_variants and variant_key not in product.variant_keys:
                    result.item_issues.append(CartItemIssue(
                        cart_item_id=line_id,
                        product_id=line.product_id,
                        product_name=product.name,
                        issue_type=CartIssueType.NO_LONGER_AVAILABLE,
                        message=f"{product.name} - the selected option is no longer available",
                    ))
                    continue

                stock = product.get_variant_stock(variant_key)
                if stock < line.quantity:
                    result.item_issues.append(CartItemIssue(
                        cart_item_id=line_id,
                        product_id=line.product_id,
                        product_name=product.name,
                        issue_type=CartIssueType.OUT_OF_STOCK,
                        message=f"{product.name} - Only {stock} available (you have {line.quantity} in cart)",
                    ))

            if result.item_issues:
                result.is_valid = False
                result.errors.append(f"{len(result.item_issues)} item(s) in your cart have issues")

        except CartError as e:
            logger.warning(f"Cart validation for user {user_id} failed: {e.message}")
            result.is_valid = False
            result.errors.append(e.message)
        except Exception as e:
            logger.error(f"Failed to validate cart for user {user_id}: {e}")
            result.is_valid = False
            result.errors.append("Failed to validate cart")

        return result

    async def get_item_count(self, user_id: str) -> int:
        """Количество товаров в корзине, по возможности из кэша"""
        try:
            self._require_ids(user_id)

            cached = self.count_cache.get(user_id)
            if cached is not None:
                return cached

            lines = await self._read_lines(user_id)
            return sum(line.quantity for line in lines)

        except Exception as e:
            logger.error(f"Failed to get cart count for user {user_id}: {e}")
            return 0

    async def is_in_cart(self, user_id: str, product_id: str) -> bool:
        """Есть ли в корзине товар в любом варианте"""
        try:
            self._require_ids(user_id, product_id)
            cart = await self.store.get(user_id)
            return cart is not None and any(line.product_id == product_id for line in cart.lines)
        except Exception as e:
            logger.error(f"Failed to check product {product_id} in cart of user {user_id}: {e}")
            return False

    # ---- вспомогательные ----

    async def _read_lines(self, user_id: str) -> List[CartLine]:
        # snapshot до чтения: если корзину изменят во время чтения, счётчик не закэшируется
        snapshot = self.count_cache.snapshot()

        await self.store.ensure_exists(user_id)
        cart = await self.store.get(user_id)
        lines = cart.lines if cart else []

        self.count_cache.set(user_id, sum(line.quantity for line in lines), snapshot)
        return lines

    async def _get_product(self, product_id: str) -> Product:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def _fetch_products(self, product_ids: Iterable[str]) -> Dict[str, Optional[Product]]:
        unique_ids = list(dict.fromkeys(product_ids))
        products = await asyncio.gather(*(self.catalog.get_product(pid) for pid in unique_ids))
        return dict(zip(unique_ids, products))

    async def _write_quantity(self, user_id: str, parts: LineIdParts, quantity: int) -> None:
        """Чтение и условная запись списка строк, с повтором при конкурентной записи"""
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.settings.cart_write_max_attempts),
            wait=wait_exponential(multiplier=0.02, min=0.02, max=0.5),
            retry=retry_if_exception_type(CartConflictError),
        )

        async for attempt in retrying:
            with attempt:
                cart = await self.store.get(user_id)
                lines = cart_lines.set_quantity(cart.lines, parts.product_id, parts.size, parts.color, quantity) if cart else None
                if lines is None:
                    raise LineNotFoundError(
                        f"Product {parts.product_id} (size={parts.size}, color={parts.color}) is not in the cart"
                    )

                if not await self.store.compare_and_replace(user_id, lines, cart.updated_at):
                    raise CartConflictError(f"Cart of user {user_id} was modified concurrently")

    def _parse_line_id(self, user_id: str, line_id: str) -> LineIdParts:
        parts = parse_composite_id(line_id)
        if parts.user_id != user_id:
            raise InvalidInputError(f"Cart line {line_id} does not belong to user {user_id}")
        return parts

    @staticmethod
    def _line_id_or_none(user_id: str, line: CartLine) -> Optional[str]:
        try:
            return build_composite_id(user_id, line.product_id, line.size, line.color)
        except InvalidLineIdError as e:
            logger.warning(f"Cart line of user {user_id} has no composite id: {e.message}")
            return None

    @staticmethod
    def _require_ids(user_id: str, product_id: Optional[str] = None) -> None:
        if not user_id or not user_id.strip():
            raise InvalidInputError("User id is required")
        if product_id is not None and not product_id.strip():
            raise InvalidInputError("Product id is required")
        for value in (user_id, product_id):
            if value and LINE_ID_SEPARATOR in value:
                raise InvalidInputError(f"Identifier '{value}' must not contain '{LINE_ID_SEPARATOR}'")

    @staticmethod
    def _require_selection(size: Optional[str], color: Optional[str]) -> None:
        # размер и цвет входят в составной ID строки и в ключ варианта
        for label, value in (("Size", size), ("Color", color)):
            if value is None:
                continue
            for separator in (LINE_ID_SEPARATOR, VARIANT_SEPARATOR):
                if separator in value:
                    raise InvalidInputError(f"{label} '{value}' must not contain '{separator}'")

    @staticmethod
    def _failure(action: str, user_id: str, error: CartError) -> CartActionResult:
        if isinstance(error, StoreUnavailableError):
            logger.error(f"Failed to {action} for user {user_id}: {error.message}")
        else:
            logger.warning(f"Rejected {action} for user {user_id}: {error.message}")
        return CartActionResult.fail(error.code, error.message)

    @staticmethod
    def _unexpected(action: str, user_id: str, error: Exception) -> CartActionResult:
        logger.error(f"Failed to {action} for user {user_id}: {error}")
        return CartActionResult.fail(CartErrorCode.STORE_UNAVAILABLE, f"Could not {action}, please try again")
