import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from ..schemas.cart import Cart
from ..schemas.cart_item import CartLine
from ..services import cart_lines
from .cart_store import CartStore


class InMemoryCartStore(CartStore):
    """Хранилище корзин в памяти, для разработки и тестов"""

    def __init__(self) -> None:
        self._carts: Dict[str, Cart] = {}
        self._lock = asyncio.Lock()

    async def ensure_exists(self, user_id: str) -> bool:
        async with self._lock:
            if user_id not in self._carts:
                self._carts[user_id] = Cart(user_id=user_id, lines=[], created_at=cart_lines.utcnow())
        return True

    async def get(self, user_id: str) -> Optional[Cart]:
        cart = self._carts.get(user_id)
        return cart.model_copy(deep=True) if cart else None

    async def replace(self, user_id: str, lines: List[CartLine]) -> bool:
        async with self._lock:
            self._write(user_id, lines)
        return True

    async def compare_and_replace(
            self,
            user_id: str,
            lines: List[CartLine],
            expected_updated_at: Optional[datetime],
    ) -> bool:
        async with self._lock:
            cart = self._carts.get(user_id)
            if cart is None or cart.updated_at != expected_updated_at:
                return False
            self._write(user_id, lines)
        return True

    async def add_line(self, user_id, product_id, quantity, size, color) -> List[CartLine]:
        async with self._lock:
            cart = self._carts.get(user_id)
            current = cart.lines if cart else []
            lines = cart_lines.add_or_increment(current, product_id, quantity, size, color)
            return self._write(user_id, lines).lines

    async def remove_line(self, user_id, product_id, size, color) -> List[CartLine]:
        async with self._lock:
            cart = self._carts.get(user_id)
            if cart is None:
                return []
            lines = cart_lines.remove_matching(cart.lines, product_id, size, color)
            return self._write(user_id, lines).lines

    def _write(self, user_id: str, lines: List[CartLine]) -> Cart:
        previous = self._carts.get(user_id)
        cart = Cart(
            user_id=user_id,
            lines=list(lines),
            created_at=previous.created_at if previous else cart_lines.utcnow(),
            updated_at=cart_lines.next_timestamp(previous.updated_at if previous else None),
        )
        self._carts[user_id] = cart
        return cart
