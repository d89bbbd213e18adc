"""
Read-only collaborators of the order core: the product catalog and the
address book. Both are plain queries against tables owned by other services.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from marketplace.models.database import Address, Brand, InventoryRecord, Product, ProductImage


@dataclass(frozen=True)
class ProductInfo:
    id: int
    name: str
    price: Decimal
    sale_price: Optional[Decimal]
    is_active: bool
    stock: int
    sku: Optional[str] = None
    brand_name: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def effective_price(self) -> Decimal:
        """Sale price when set, otherwise list price"""
        return effective_price(self.price, self.sale_price)


def effective_price(price, sale_price) -> Decimal:
    return Decimal(sale_price if sale_price is not None else price)


class CatalogReader:
    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return (
            self.db.query(
                Product,
                func.coalesce(InventoryRecord.quantity, 0).label("stock"),
                Brand.name.label("brand_name"),
                ProductImage.url.label("image_url"),
            )
            .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
            .outerjoin(Brand, Brand.id == Product.brand_id)
            .outerjoin(
                ProductImage,
                and_(ProductImage.product_id == Product.id, ProductImage.is_primary.is_(True)),
            )
        )

    @staticmethod
    def _to_info(row) -> ProductInfo:
        product, stock, brand_name, image_url = row
        return ProductInfo(
            id=product.id,
            name=product.name,
            price=product.price,
            sale_price=product.sale_price,
            is_active=product.is_active,
            stock=stock,
            sku=product.sku,
            brand_name=brand_name,
            image_url=image_url,
        )

    def get_product(self, product_id: int, active_only: bool = True) -> Optional[ProductInfo]:
        query = self._query().filter(Product.id == product_id)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        row = query.first()
        return self._to_info(row) if row else None

    def get_products(self, product_ids: Iterable[int]) -> Dict[int, ProductInfo]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self._query().filter(Product.id.in_(ids)).all()
        infos = {}
        for row in rows:
            # first primary image wins when a product has several
            infos.setdefault(row[0].id, self._to_info(row))
        return infos

    def primary_image_urls(self, product_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(ProductImage.product_id, ProductImage.url)
            .filter(ProductImage.product_id.in_(ids), ProductImage.is_primary.is_(True))
            .order_by(ProductImage.id)
            .all()
        )
        urls = {}
        for product_id, url in rows:
            urls.setdefault(product_id, url)
        return urls


class AddressBook:
    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, address_id: int, user_id: int) -> Optional[Address]:
        return self.db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == user_id,
        ).first()
