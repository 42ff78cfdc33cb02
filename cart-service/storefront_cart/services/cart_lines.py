"""Операции над списком строк корзины, общие для всех хранилищ"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
import logging

from pydantic import ValidationError

from ..schemas.cart import CART_SCHEMA_VERSION
from ..schemas.cart_item import CartLine
from .variant_key import normalize_selection

logger = logging.getLogger(__name__)

# документы версии 0 писались с ключами в camelCase
_LEGACY_KEYS = {
    "productId": "product_id",
    "addedAt": "added_at",
    "createdAt": "added_at",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Время записи строго позже previous, иначе compare-and-swap по updated_at не работает"""
    now = utcnow()
    if previous is None:
        return now
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def migrate_line_documents(
        documents: Iterable[Dict[str, Any]],
        schema_version: int,
        fallback_added_at: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Миграция сохранённых документов строк до CART_SCHEMA_VERSION"""
    documents = [dict(doc) for doc in documents or []]

    if schema_version < 1:
        migrated = []
        for doc in documents:
            for old_key, new_key in _LEGACY_KEYS.items():
                if old_key in doc and new_key not in doc:
                    doc[new_key] = doc.pop(old_key)
                else:
                    doc.pop(old_key, None)
            doc.setdefault("added_at", fallback_added_at or utcnow())
            doc["product_id"] = str(doc.get("product_id", ""))
            migrated.append(doc)
        documents = migrated

    return documents


def load_lines(
        documents: Iterable[Dict[str, Any]],
        schema_version: int = CART_SCHEMA_VERSION,
        fallback_added_at: Optional[datetime] = None,
) -> List[CartLine]:
    lines = []
    for doc in migrate_line_documents(documents, schema_version, fallback_added_at):
        doc["size"] = normalize_selection(doc.get("size"))
        doc["color"] = normalize_selection(doc.get("color"))

        try:
            quantity = int(doc.get("quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0
        if quantity <= 0:
            logger.warning(f"Dropping stored cart line with non-positive quantity: {doc}")
            continue
        doc["quantity"] = quantity

        try:
            lines.append(CartLine.model_validate(doc))
        except ValidationError as e:
            logger.warning(f"Dropping unreadable cart line {doc}: {e}")
    return lines


def dump_lines(lines: Iterable[CartLine]) -> List[Dict[str, Any]]:
    return [line.model_dump(mode="json") for line in lines]


def add_or_increment(
        lines: List[CartLine],
        product_id: str,
        quantity: int,
        size: Optional[str],
        color: Optional[str],
        now: Optional[datetime] = None,
) -> List[CartLine]:
    """Увеличить подходящую строку на quantity или добавить новую"""
    size = normalize_selection(size)
    color = normalize_selection(color)

    result = []
    found = False
    for line in lines:
        if line.matches(product_id, size, color):
            line = line.model_copy(update={"quantity": line.quantity + quantity})
            found = True
        result.append(line)

    if not found:
        result.append(
            CartLine(
                product_id=product_id,
                quantity=quantity,
                size=size,
                color=color,
                added_at=now or utcnow(),
            )
        )
    return result


def remove_matching(lines: List[CartLine], product_id: str, size: Optional[str], color: Optional[str]) -> List[CartLine]:
    size = normalize_selection(size)
    color = normalize_selection(color)
    return [line for line in lines if not line.matches(product_id, size, color)]


def set_quantity(
        lines: List[CartLine],
        product_id: str,
        size: Optional[str],
        color: Optional[str],
        quantity: int,
) -> Optional[List[CartLine]]:
    """Заменить количество подходящей строки, added_at сохраняется.

    None, если строка не найдена. Количество меньше 1 удаляет строку.
    """
    size = normalize_selection(size)
    color = normalize_selection(color)

    result = []
    found = False
    for line in lines:
        if line.matches(product_id, size, color):
            found = True
            if quantity <= 0:
                continue
            line = line.model_copy(update={"quantity": quantity})
        result.append(line)

    return result if found else None
