from abc import ABC, abstractmethod
from typing import Optional
import logging

import httpx
from pydantic import ValidationError

from ..config import settings
from ..schemas.product import Product
from .exceptions import CatalogUnavailableError

logger = logging.getLogger(__name__)


class ProductCatalog(ABC):
    """Каталог товаров, которым пользуется корзина"""

    @abstractmethod
    async def get_product(self, product_id: str) -> Optional[Product]:
        """Товар или None, если каталог его не знает"""


class CatalogClient(ProductCatalog):
    """Клиент для взаимодействия с Catalog Service"""

    def __init__(
            self,
            base_url: Optional[str] = None,
            timeout: Optional[float] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.catalog_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.catalog_timeout
        self.transport = transport

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Получить информацию о товаре; 404 значит, что товара больше нет"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/products/{product_id}")
        except httpx.TimeoutException as e:
            logger.error(f"Timeout when fetching product {product_id}")
            raise CatalogUnavailableError(f"Catalog timed out for product {product_id}", e) from e
        except httpx.HTTPError as e:
            logger.error(f"Error fetching product {product_id}: {e}")
            raise CatalogUnavailableError(f"Catalog unreachable for product {product_id}", e) from e

        if response.status_code == 404:
            logger.warning(f"Product {product_id} not found")
            return None

        if response.status_code != 200:
            logger.error(f"Error fetching product {product_id}: {response.status_code}")
            raise CatalogUnavailableError(
                f"Catalog answered {response.status_code} for product {product_id}"
            )

        try:
            return Product.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"Catalog returned an unreadable product {product_id}: {e}")
            raise CatalogUnavailableError(f"Unreadable catalog record for product {product_id}", e) from e
