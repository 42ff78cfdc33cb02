from sqlalchemy import Column, String, DateTime, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB

from ..database import Base
from ..schemas.cart import CART_SCHEMA_VERSION


class CartRecord(Base):
    __tablename__ = "carts"

    user_id = Column(String, primary_key=True, index=True)

    # список документов строк, см. schemas.cart_item.CartLine
    items = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    schema_version = Column(Integer, nullable=False, default=CART_SCHEMA_VERSION)

    created_at = Column(DateTime(timezone=True), nullable=False)
    # токен compare-and-swap для перезаписи всего списка
    updated_at = Column(DateTime(timezone=True), nullable=True)
