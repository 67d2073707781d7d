from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, Field


class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)


class Product(ProductIn):
    id: int


SEED_PRODUCTS = (
    Product(id=1, name='Camera', price=599.99),
    Product(id=2, name='Lens', price=399.99),
    Product(id=3, name='Tripod', price=89.99),
)


class ProductStore:
    """In-memory product catalog, one per app."""

    def __init__(self, products: Iterable[Product] = SEED_PRODUCTS):
        self._products = {p.id: p for p in products}

    def __len__(self) -> int:
        return len(self._products)

    def all(self) -> list[Product]:
        return list(self._products.values())

    def get(self, product_id: int) -> Product | None:
        return self._products.get(product_id)

    def add(self, item: ProductIn) -> Product:
        next_id = max(self._products, default=0) + 1
        product = Product(id=next_id, **item.model_dump())
        self._products[next_id] = product
        return product
