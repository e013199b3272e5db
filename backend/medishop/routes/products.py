from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFound
from ..models.product import Product
from ..schemas.base import dump, envelope
from ..schemas.product import ProductResponse

router = APIRouter(prefix="/products", tags=["Products"])


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0
    }


@router.get("")
async def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """List active products"""
    query = db.query(Product).filter(Product.is_active == True)  # noqa: E712

    if category:
        query = query.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.brand.ilike(pattern),
            Product.description.ilike(pattern)
        ))

    total = query.count()
    products = query.order_by(Product.name).offset((page - 1) * limit).limit(limit).all()

    return envelope(
        [dump(ProductResponse, p) for p in products],
        pagination=pagination(page, limit, total)
    )


@router.get("/{product_id}")
async def get_product(product_id: int, db: Session = Depends(get_db)):
    """Get a single active product"""
    product = db.query(Product).filter(
        Product.id == product_id,
        Product.is_active == True  # noqa: E712
    ).first()
    if not product:
        raise NotFound("Product not found")
    return envelope(dump(ProductResponse, product))
