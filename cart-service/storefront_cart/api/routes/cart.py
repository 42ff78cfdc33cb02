from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ...schemas.cart import CartActionResult, CartSummary, CartValidationResult
from ...schemas.cart_item import CartItemCreate, CartItemUpdate, CartLine
from ...services.cart_service import CartService
from ...services.exceptions import CartErrorCode
from ..dependencies import get_cart_service, get_current_user

router = APIRouter()

ERROR_STATUS_CODES = {
    CartErrorCode.INVALID_INPUT: 400,
    CartErrorCode.PRODUCT_NOT_FOUND: 404,
    CartErrorCode.INVALID_VARIANT: 422,
    CartErrorCode.INSUFFICIENT_STOCK: 409,
    CartErrorCode.LINE_NOT_FOUND: 404,
    CartErrorCode.STORE_UNAVAILABLE: 503,
}


def _raise_for_result(result: CartActionResult) -> CartActionResult:
    """Неуспешный результат превращаем в HTTP ошибку"""
    if not result.success:
        status_code = ERROR_STATUS_CODES.get(result.error, 500)
        raise HTTPException(
            status_code=status_code,
            detail={"error": result.error.value if result.error else None, "message": result.message},
        )
    return result


@router.get("/cart", response_model=CartSummary)
async def get_cart(
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Корзина пользователя с ценами и доставкой"""
    return await cart_service.get_cart_summary(user_id)


@router.get("/cart/items", response_model=List[CartLine])
async def get_cart_items(
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Сохранённые строки корзины без обращения к каталогу"""
    return await cart_service.get_user_cart(user_id)


@router.post("/cart/items", response_model=CartActionResult, status_code=201)
async def add_item_to_cart(
        item: CartItemCreate,
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Добавление товара в корзину"""
    result = await cart_service.add_to_cart(user_id, item.product_id, item.quantity, item.size, item.color)
    return _raise_for_result(result)


@router.put("/cart/items/{line_id}", response_model=CartActionResult)
async def update_cart_item(
        line_id: str,
        item: CartItemUpdate,
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Обновление количества, 0 или меньше удаляет строку"""
    result = await cart_service.update_quantity(user_id, line_id, item.quantity)
    return _raise_for_result(result)


@router.delete("/cart/items/{line_id}", response_model=CartActionResult)
async def remove_cart_line(
        line_id: str,
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    result = await cart_service.remove_from_cart_by_id(user_id, line_id)
    return _raise_for_result(result)


@router.delete("/cart/items", response_model=CartActionResult)
async def remove_item_from_cart(
        product_id: str,
        size: Optional[str] = None,
        color: Optional[str] = None,
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Удаление товара по product_id и варианту"""
    result = await cart_service.remove_from_cart(user_id, product_id, size, color)
    return _raise_for_result(result)


@router.delete("/cart", response_model=CartActionResult)
async def clear_cart(
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Очистка корзины"""
    result = await cart_service.clear_cart(user_id)
    return _raise_for_result(result)


@router.get("/cart/count")
async def get_cart_count(
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    return {"count": await cart_service.get_item_count(user_id)}


@router.get("/cart/validate", response_model=CartValidationResult)
async def validate_cart(
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    """Проверка корзины перед оформлением заказа"""
    return await cart_service.validate_cart(user_id)


@router.get("/cart/products/{product_id}")
async def is_product_in_cart(
        product_id: str,
        user_id: str = Depends(get_current_user),
        cart_service: CartService = Depends(get_cart_service)
):
    return {"product_id": product_id, "in_cart": await cart_service.is_in_cart(user_id, product_id)}
