from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..schemas.cart import Cart
from ..schemas.cart_item import CartLine


class CartStore(ABC):
    """Хранилище корзин: одна запись на пользователя"""

    @abstractmethod
    async def ensure_exists(self, user_id: str) -> bool:
        """Создать пустую корзину, если её нет. Конкурентное создание тоже успех."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[Cart]:
        ...

    @abstractmethod
    async def replace(self, user_id: str, lines: List[CartLine]) -> bool:
        """Безусловно перезаписать весь список строк"""

    @abstractmethod
    async def compare_and_replace(
            self,
            user_id: str,
            lines: List[CartLine],
            expected_updated_at: Optional[datetime],
    ) -> bool:
        """Перезаписать строки, только если корзина не менялась после expected_updated_at"""

    @abstractmethod
    async def add_line(
            self,
            user_id: str,
            product_id: str,
            quantity: int,
            size: Optional[str],
            color: Optional[str],
    ) -> List[CartLine]:
        """Атомарно увеличить подходящую строку или добавить новую"""

    @abstractmethod
    async def remove_line(
            self,
            user_id: str,
            product_id: str,
            size: Optional[str],
            color: Optional[str],
    ) -> List[CartLine]:
        """Атомарно удалить подходящую строку, если она есть"""

    async def ping(self) -> bool:
        return True
