"""Shared fixtures: an in-memory cart store and catalog wired into a CartService"""
from decimal import Decimal

import pytest

from storefront_cart.config import Settings
from storefront_cart.repositories.in_memory_cart_store import InMemoryCartStore
from storefront_cart.schemas.product import Product, ProductVariant
from storefront_cart.services.cart_service import CartService
from storefront_cart.services.count_cache import CartCountCache
from storefront_cart.services.in_memory_catalog import InMemoryProductCatalog


def make_products():
    return [
        # P1: one variant, M/Blue, 5 in stock at 8000
        Product(
            id="P1",
            name="Linen Shirt",
            slug="linen-shirt",
            price=Decimal("9000"),
            images=["https://cdn.example.com/p1.jpg"],
            stock=0,
            sku="SHIRT-1",
            variants={
                "M|Blue": ProductVariant(
                    size="M", color="Blue", color_hex="#0000FF", sku="SHIRT-1-M-BL",
                    price=Decimal("8000"), stock=5,
                ),
            },
        ),
        Product(
            id="P2",
            name="Wool Coat",
            slug="wool-coat",
            price=Decimal("30000"),
            stock=0,
            variants={
                "M|Black": ProductVariant(size="M", color="Black", price=Decimal("30000"), stock=3),
                "L|Red": ProductVariant(size="L", color="Red", price=Decimal("32000"), stock=1),
            },
        ),
        # no variants
        Product(
            id="P3",
            name="Canvas Tote",
            slug="canvas-tote",
            price=Decimal("1500"),
            images=["https://cdn.example.com/p3.jpg"],
            stock=10,
            sku="TOTE",
        ),
    ]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        cart_store_backend="memory",
        free_shipping_threshold=Decimal("50000"),
        standard_shipping_cost=Decimal("2000"),
        cart_write_max_attempts=3,
    )


@pytest.fixture
def cart_store() -> InMemoryCartStore:
    return InMemoryCartStore()


@pytest.fixture
def catalog() -> InMemoryProductCatalog:
    return InMemoryProductCatalog(make_products())


@pytest.fixture
def count_cache() -> CartCountCache:
    return CartCountCache(max_entries=100)


@pytest.fixture
def cart_service(cart_store, catalog, count_cache, test_settings) -> CartService:
    return CartService(cart_store, catalog, count_cache, test_settings)


@pytest.fixture
def products():
    return {product.id: product for product in make_products()}
