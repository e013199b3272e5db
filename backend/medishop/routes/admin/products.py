import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import Conflict, NotFound
from ...models.admin import Admin
from ...models.product import Product
from ...schemas.base import dump, envelope
from ...schemas.product import ProductCreate, ProductResponse, ProductUpdate
from ...utils.security import get_current_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/products", tags=["Admin Products"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Create a catalog product"""
    if db.query(Product).filter(Product.sku == payload.sku).first():
        raise Conflict(f"A product with SKU {payload.sku} already exists")

    product = Product(**payload.model_dump())
    db.add(product)
    db.commit()
    db.refresh(product)

    logger.info(f"Product {product.sku} created by admin {current_admin.id}")
    return envelope(dump(ProductResponse, product), "Product created successfully")


@router.patch("/{product_id}")
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Update product fields; omitted fields are left alone"""
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found")

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return envelope(dump(ProductResponse, product), "Product updated successfully")
