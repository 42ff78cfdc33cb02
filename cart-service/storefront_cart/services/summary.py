from decimal import Decimal
from typing import List

from ..schemas.cart import CartSummary
from ..schemas.cart_item import CartLine, CartLineView
from ..schemas.product import Product
from .line_id import build_composite_id
from .variant_key import build_variant_key


def build_line_view(user_id: str, line: CartLine, product: Product) -> CartLineView:
    """Строка корзины с ценой из актуальной записи каталога"""
    variant_key = build_variant_key(line.size, line.color)
    variant = product.get_variant(variant_key)

    price = product.get_variant_price(variant_key)
    stock = product.get_variant_stock(variant_key)

    return CartLineView(
        id=build_composite_id(user_id, line.product_id, line.size, line.color),
        product_id=line.product_id,
        name=product.name,
        slug=product.slug,
        image_url=product.get_variant_image(variant_key),
        price=price,
        original_price=product.original_price,
        quantity=line.quantity,
        max_quantity=stock,
        size=line.size,
        color=line.color,
        color_hex=variant.color_hex if variant else None,
        variant_key=variant_key,
        sku=(variant.sku if variant and variant.sku else product.sku) or None,
        stock=stock,
        is_in_stock=stock > 0,
        subtotal=price * line.quantity,
        shipping_cost=product.get_variant_shipping_cost(variant_key),
        has_free_shipping=product.variant_has_free_shipping(variant_key),
        can_increase_quantity=line.quantity < stock,
        can_decrease_quantity=line.quantity > 1,
        added_at=line.added_at,
    )


def build_summary(
        items: List[CartLineView],
        free_shipping_threshold: Decimal,
        standard_shipping_cost: Decimal,
) -> CartSummary:
    subtotal = sum((item.subtotal for item in items), Decimal("0"))
    is_empty = not items

    # бесплатно от порога, ниже порога фиксированная цена, пустую корзину не доставляем
    has_free_shipping = not is_empty and subtotal >= free_shipping_threshold
    if is_empty or has_free_shipping:
        shipping_cost = Decimal("0")
    else:
        shipping_cost = standard_shipping_cost

    has_out_of_stock_items = any(not item.is_in_stock for item in items)

    return CartSummary(
        items=items,
        total_items=sum(item.quantity for item in items),
        subtotal=subtotal,
        shipping_cost=shipping_cost,
        has_free_shipping=has_free_shipping,
        free_shipping_threshold=free_shipping_threshold,
        amount_to_free_shipping=max(free_shipping_threshold - subtotal, Decimal("0")),
        total=subtotal + shipping_cost,
        is_empty=is_empty,
        has_out_of_stock_items=has_out_of_stock_items,
        can_checkout=not is_empty and not has_out_of_stock_items,
    )


def empty_summary(free_shipping_threshold: Decimal) -> CartSummary:
    return CartSummary(
        free_shipping_threshold=free_shipping_threshold,
        amount_to_free_shipping=free_shipping_threshold,
    )
