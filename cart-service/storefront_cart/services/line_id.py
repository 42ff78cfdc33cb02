from typing import NamedTuple, Optional

from .exceptions import InvalidLineIdError
from .variant_key import normalize_selection

LINE_ID_SEPARATOR = "_"
NULL_SEGMENT = "null"


class LineIdParts(NamedTuple):
    user_id: str
    product_id: str
    size: Optional[str]
    color: Optional[str]


def build_composite_id(user_id: str, product_id: str, size: Optional[str] = None, color: Optional[str] = None) -> str:
    """Составной ID строки вида {user}_{product}_{size|null}_{color|null}"""
    parts = [user_id, product_id, normalize_selection(size) or NULL_SEGMENT, normalize_selection(color) or NULL_SEGMENT]

    for part in parts:
        if LINE_ID_SEPARATOR in part:
            raise InvalidLineIdError(f"Cart line id component '{part}' must not contain '{LINE_ID_SEPARATOR}'")

    return LINE_ID_SEPARATOR.join(parts)


def parse_composite_id(line_id: str) -> LineIdParts:
    """Разобрать составной ID на пользователя, товар, размер и цвет.

    На некорректном ID бросает InvalidLineIdError: такие ID строит только
    этот модуль, поэтому битый ID это ошибка вызывающего кода.
    """
    if not line_id:
        raise InvalidLineIdError("Cart line id is empty")

    segments = line_id.split(LINE_ID_SEPARATOR)
    if len(segments) < 2:
        raise InvalidLineIdError(f"Invalid cart line id format: {line_id}")
    if len(segments) > 4:
        raise InvalidLineIdError(f"Too many segments in cart line id: {line_id}")

    user_id, product_id = segments[0], segments[1]
    if not user_id or not product_id:
        raise InvalidLineIdError(f"Cart line id is missing user or product: {line_id}")

    size = _segment(segments, 2)
    color = _segment(segments, 3)
    return LineIdParts(user_id, product_id, size, color)


def _segment(segments, index: int) -> Optional[str]:
    if index >= len(segments) or segments[index] == NULL_SEGMENT:
        return None
    return normalize_selection(segments[index])
