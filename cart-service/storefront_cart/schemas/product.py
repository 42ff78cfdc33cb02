from decimal import Decimal
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from ..services.variant_key import NO_VARIANT_KEY


class ProductVariant(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    color_hex: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    stock: int = 0
    image_url: Optional[str] = None
    shipping_cost: Optional[Decimal] = None
    free_shipping: bool = False
    weight: Optional[Decimal] = None


class Product(BaseModel):
    """Товар из каталога в том виде, который нужен корзине.

    Геттеры вариантов принимают ключ варианта; для базового ключа или
    необъявленного варианта возвращаются значения самого товара.
    """

    id: str
    name: str
    slug: str = ""
    price: Decimal
    original_price: Optional[Decimal] = None
    images: List[str] = []
    stock: int = 0
    sku: str = ""
    is_active: bool = True
    shipping_cost: Decimal = Decimal("0")
    free_shipping: bool = False
    weight: Decimal = Decimal("0")
    variants: Dict[str, ProductVariant] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return str(value)

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    @property
    def variant_keys(self) -> Set[str]:
        return set(self.variants)

    def get_variant(self, variant_key: Optional[str]) -> Optional[ProductVariant]:
        if not variant_key or variant_key == NO_VARIANT_KEY:
            return None
        return self.variants.get(variant_key)

    def get_variant_stock(self, variant_key: Optional[str]) -> int:
        variant = self.get_variant(variant_key)
        return variant.stock if variant else self.stock

    def get_variant_price(self, variant_key: Optional[str]) -> Decimal:
        variant = self.get_variant(variant_key)
        if variant and variant.price is not None:
            return variant.price
        return self.price

    def get_variant_image(self, variant_key: Optional[str]) -> str:
        variant = self.get_variant(variant_key)
        if variant and variant.image_url:
            return variant.image_url
        return self.images[0] if self.images else ""

    def get_variant_shipping_cost(self, variant_key: Optional[str]) -> Decimal:
        variant = self.get_variant(variant_key)
        if variant and variant.shipping_cost is not None:
            return variant.shipping_cost
        return self.shipping_cost

    def variant_has_free_shipping(self, variant_key: Optional[str]) -> bool:
        variant = self.get_variant(variant_key)
        if variant:
            return variant.free_shipping
        return self.free_shipping

    def get_variant_weight(self, variant_key: Optional[str]) -> Decimal:
        variant = self.get_variant(variant_key)
        if variant and variant.weight is not None:
            return variant.weight
        return self.weight
