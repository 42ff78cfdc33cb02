"""Ключ варианта товара.

Ключ описывает выбранные размер и цвет. По нему в каталоге ищутся цена,
остаток и картинка варианта, а нормализованная пара размер/цвет входит в
идентичность строки корзины.
"""
from typing import Optional, Tuple

from .exceptions import InvalidVariantError

VARIANT_SEPARATOR = "|"

# без "|", поэтому не совпадёт ни с одной комбинацией размера и цвета
NO_VARIANT_KEY = "__base__"


def normalize_selection(value: Optional[str]) -> Optional[str]:
    """Пустой выбор означает, что ничего не выбрано"""
    if value is None or not value.strip():
        return None
    return value


def build_variant_key(size: Optional[str], color: Optional[str]) -> str:
    size = normalize_selection(size)
    color = normalize_selection(color)

    if size is None and color is None:
        return NO_VARIANT_KEY

    return f"{size or ''}{VARIANT_SEPARATOR}{color or ''}"


def parse_variant_key(variant_key: str) -> Tuple[Optional[str], Optional[str]]:
    if variant_key == NO_VARIANT_KEY or VARIANT_SEPARATOR not in variant_key:
        return None, None

    size, color = variant_key.split(VARIANT_SEPARATOR, 1)
    return normalize_selection(size), normalize_selection(color)


def validate_variant_selection(product, size: Optional[str], color: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Проверка выбранных размера и цвета по вариантам товара.

    Товар без вариантов принимает любой выбор и игнорирует его. Товар с
    вариантами принимает только объявленные ключи, иначе в корзине
    появится строка без цены и остатка.
    """
    if not product.has_variants:
        return True, None

    variant_key = build_variant_key(size, color)
    if variant_key in product.variant_keys:
        return True, None

    selection = ", ".join(
        f"{label} '{value}'"
        for label, value in (("size", normalize_selection(size)), ("color", normalize_selection(color)))
        if value is not None
    ) or "no size or color"

    return False, f"Invalid selection for {product.name}: {selection} is not available"


def require_valid_variant(product, size: Optional[str], color: Optional[str]) -> str:
    """Проверить выбор и вернуть ключ варианта"""
    ok, error = validate_variant_selection(product, size, color)
    if not ok:
        raise InvalidVariantError(error)
    return build_variant_key(size, color)
