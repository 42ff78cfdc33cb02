import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import AsyncSessionLocal, check_connection, create_tables, engine
from .api.routes.cart import router as cart_router
from .repositories.cart_store import CartStore
from .repositories.in_memory_cart_store import InMemoryCartStore
from .repositories.sql_cart_store import SqlCartStore
from .services.cart_service import CartService
from .services.catalog_client import CatalogClient, ProductCatalog
from .services.count_cache import CartCountCache

# Настройка логирования
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


async def wait_for_db(max_retries: Optional[int] = None, delay: Optional[float] = None) -> bool:
    """Ожидает готовности базы данных с повторными попытками"""
    max_retries = max_retries or settings.db_connect_max_retries
    delay = delay if delay is not None else settings.db_connect_retry_delay

    for attempt in range(1, max_retries + 1):
        logger.info(f"Attempting to connect to database (attempt {attempt}/{max_retries})...")

        if await check_connection():
            logger.info("✅ Database connection successful!")
            return True

        if attempt < max_retries:
            logger.warning(f"Database not ready, waiting {delay} seconds... (attempt {attempt}/{max_retries})")
            await asyncio.sleep(delay)

    logger.error(f"❌ Failed to connect to database after {max_retries} attempts")
    raise ConnectionError(f"Database is not reachable after {max_retries} attempts")


async def build_cart_store() -> CartStore:
    """Хранилище корзин по настройке cart_store_backend"""
    if settings.cart_store_backend == "memory":
        logger.warning("Using in-memory cart store, carts are lost on restart")
        return InMemoryCartStore()

    logger.info("Waiting for database to be ready...")
    await wait_for_db()

    logger.info("Creating database tables...")
    await create_tables()
    logger.info("Database tables created successfully")

    return SqlCartStore(AsyncSessionLocal)


def create_app(cart_store: Optional[CartStore] = None, catalog: Optional[ProductCatalog] = None) -> FastAPI:
    """Собирает приложение; тесты передают свои хранилище и каталог"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Управление жизненным циклом приложения"""
        # Startup
        logger.info("Starting Cart Service...")
        owns_engine = cart_store is None and settings.cart_store_backend != "memory"

        try:
            store = cart_store or await build_cart_store()
            product_catalog = catalog or CatalogClient()
            count_cache = CartCountCache(settings.count_cache_max_entries)

            app.state.cart_store = store
            app.state.catalog = product_catalog
            app.state.count_cache = count_cache
            app.state.cart_service = CartService(store, product_catalog, count_cache, settings)

            logger.info("✅ Cart Service started successfully!")

        except Exception as e:
            logger.error(f"❌ Failed to start Cart Service: {e}")
            raise

        yield  # Приложение работает

        # Shutdown
        logger.info("Shutting down Cart Service...")

        if owns_engine:
            await engine.dispose()

        logger.info("✅ Cart Service shut down successfully!")

    app = FastAPI(
        title=settings.app_name,
        description="Микросервис управления корзиной покупок",
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan
    )

    # Middleware для CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    # Подключаем роуты
    app.include_router(cart_router, prefix="/api/v1", tags=["cart"])

    @app.get("/health")
    async def health_check():
        """Проверка здоровья сервиса"""
        try:
            store_ok = await app.state.cart_store.ping()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unhealthy")

        if not store_ok:
            raise HTTPException(status_code=503, detail="Cart store unavailable")

        return {
            "status": "healthy",
            "service": settings.app_name,
            "store": type(app.state.cart_store).__name__,
            "version": VERSION
        }

    @app.get("/")
    async def root():
        """Корневой endpoint"""
        return {
            "service": settings.app_name,
            "version": VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "cart": "/api/v1/cart",
            }
        }

    # Exception handlers
    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        return JSONResponse(
            status_code=404,
            content={"error": "Resource not found", "detail": exc.detail if hasattr(exc, "detail") else "Not found"}
        )

    @app.exception_handler(500)
    async def internal_error_handler(request, exc):
        logger.error(f"Internal server error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": "Something went wrong"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storefront_cart.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
