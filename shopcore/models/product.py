from sqlalchemy import CheckConstraint, Column, DateTime, Integer, JSON, Numeric, String, Text, func
from .base import Base


PRODUCT_CONDITIONS = ("new", "used", "refurbished")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    original_price = Column(Numeric(12, 2), nullable=True)
    brand = Column(String(128), nullable=False)
    model = Column(String(128), nullable=False)
    storage = Column(String(64), nullable=True)
    color = Column(String(64), nullable=True)
    condition = Column(String(16), nullable=False, default="new")
    images = Column(JSON, nullable=True)  # ordered list of URLs
    specifications = Column(JSON, nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    category = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
