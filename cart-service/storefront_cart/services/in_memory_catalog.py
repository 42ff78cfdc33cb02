from typing import Dict, Iterable, Optional

from ..schemas.product import Product
from .catalog_client import ProductCatalog


class InMemoryProductCatalog(ProductCatalog):
    """Каталог в памяти, для разработки и тестов"""

    def __init__(self, products: Optional[Iterable[Product]] = None):
        self._products: Dict[str, Product] = {}
        for product in products or []:
            self.add(product)

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    def remove(self, product_id: str) -> None:
        self._products.pop(product_id, None)

    async def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(str(product_id))
