from fastapi import Header, HTTPException, Request

from ..services.cart_service import CartService


def get_current_user(x_user_id: str = Header(None)) -> str:
    """ID пользователя из заголовка X-User-Id, аутентификацию делает gateway"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


def get_cart_service(request: Request) -> CartService:
    """Dependency для получения сервиса корзины, собранного в lifespan"""
    return request.app.state.cart_service
