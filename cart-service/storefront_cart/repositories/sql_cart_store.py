from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select, update, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models.cart import CartRecord
from ..schemas.cart import Cart, CART_SCHEMA_VERSION
from ..schemas.cart_item import CartLine
from ..services import cart_lines
from ..services.exceptions import StoreUnavailableError
from .cart_store import CartStore

logger = logging.getLogger(__name__)


class SqlCartStore(CartStore):
    """Хранилище корзин в таблице carts: строка на пользователя, позиции в JSON"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def ensure_exists(self, user_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                if await session.get(CartRecord, user_id) is not None:
                    return True

                session.add(
                    CartRecord(
                        user_id=user_id,
                        items=[],
                        schema_version=CART_SCHEMA_VERSION,
                        created_at=cart_lines.utcnow(),
                        updated_at=None,
                    )
                )
                try:
                    await session.commit()
                    logger.info(f"Created cart for user {user_id}")
                except IntegrityError:
                    # строку уже вставил другой запрос
                    await session.rollback()
                    logger.info(f"Cart for user {user_id} was created concurrently")
                return True
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not create cart for user {user_id}", e) from e

    async def get(self, user_id: str) -> Optional[Cart]:
        try:
            async with self.session_factory() as session:
                record = await session.get(CartRecord, user_id)
                return self._to_cart(record) if record is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not read cart for user {user_id}", e) from e

    async def replace(self, user_id: str, lines: List[CartLine]) -> bool:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await self._lock_row(session, user_id)
                    if record is None:
                        record = self._new_record(user_id)
                        session.add(record)
                    self._write_lines(record, lines)
            return True
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not replace cart for user {user_id}", e) from e

    async def compare_and_replace(
            self,
            user_id: str,
            lines: List[CartLine],
            expected_updated_at: Optional[datetime],
    ) -> bool:
        query = update(CartRecord).where(CartRecord.user_id == user_id)
        if expected_updated_at is None:
            query = query.where(CartRecord.updated_at.is_(None))
        else:
            query = query.where(CartRecord.updated_at == expected_updated_at)

        query = query.values(
            items=cart_lines.dump_lines(lines),
            schema_version=CART_SCHEMA_VERSION,
            updated_at=cart_lines.next_timestamp(expected_updated_at),
        )

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not update cart for user {user_id}", e) from e

        if result.rowcount == 0:
            logger.warning(f"Cart for user {user_id} changed since {expected_updated_at}, write skipped")
            return False
        return True

    async def add_line(self, user_id, product_id, quantity, size, color) -> List[CartLine]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await self._lock_row(session, user_id)
                    if record is None:
                        record = self._new_record(user_id)
                        session.add(record)

                    lines = cart_lines.add_or_increment(self._lines_of(record), product_id, quantity, size, color)
                    self._write_lines(record, lines)
            return lines
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not add product {product_id} to cart of user {user_id}", e) from e

    async def remove_line(self, user_id, product_id, size, color) -> List[CartLine]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await self._lock_row(session, user_id)
                    if record is None:
                        return []

                    lines = cart_lines.remove_matching(self._lines_of(record), product_id, size, color)
                    self._write_lines(record, lines)
            return lines
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Could not remove product {product_id} from cart of user {user_id}", e) from e

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Cart store check failed: {e}")
            return False

    @staticmethod
    async def _lock_row(session, user_id: str) -> Optional[CartRecord]:
        result = await session.execute(
            select(CartRecord).where(CartRecord.user_id == user_id).with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _new_record(user_id: str) -> CartRecord:
        return CartRecord(
            user_id=user_id,
            items=[],
            schema_version=CART_SCHEMA_VERSION,
            created_at=cart_lines.utcnow(),
            updated_at=None,
        )

    @staticmethod
    def _lines_of(record: CartRecord) -> List[CartLine]:
        return cart_lines.load_lines(record.items, record.schema_version, record.created_at)

    @staticmethod
    def _write_lines(record: CartRecord, lines: List[CartLine]) -> None:
        record.items = cart_lines.dump_lines(lines)
        record.schema_version = CART_SCHEMA_VERSION
        record.updated_at = cart_lines.next_timestamp(record.updated_at)

    def _to_cart(self, record: CartRecord) -> Cart:
        return Cart(
            user_id=record.user_id,
            lines=self._lines_of(record),
            schema_version=CART_SCHEMA_VERSION,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
