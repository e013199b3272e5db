from typing import Any, Dict, List

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from ..models.order import Order, OrderItem
from ..models.product import Product
from ..models.user import User


def _breakdown(rows) -> Dict[str, Dict[str, Any]]:
    return {
        (key or "unknown"): {"revenue": float(revenue or 0), "orders": orders}
        for key, revenue, orders in rows
    }


class DashboardService:

    @staticmethod
    def get_overview_stats(db: Session) -> Dict[str, Any]:
        """Catalog, customer and revenue totals for the admin dashboard"""
        total_products = db.query(func.count(Product.id)).scalar() or 0
        total_users = db.query(func.count(User.id)).scalar() or 0
        blocked_users = db.query(func.count(User.id)).filter(User.is_blocked == True).scalar() or 0  # noqa: E712
        total_orders = db.query(func.count(Order.id)).scalar() or 0

        by_status = db.query(
            Order.status, func.sum(Order.total), func.count(Order.id)
        ).group_by(Order.status).all()

        by_payment_status = db.query(
            Order.payment_status, func.sum(Order.total), func.count(Order.id)
        ).group_by(Order.payment_status).all()

        # Cancelled orders never earned anything
        revenue = sum(float(total or 0) for status, total, _ in by_status if status and status != "cancelled")

        return {
            "totals": {
                "products": total_products,
                "users": total_users,
                "blockedUsers": blocked_users,
                "orders": total_orders,
                "revenue": revenue
            },
            "revenueByStatus": _breakdown(by_status),
            "revenueByPaymentStatus": _breakdown(by_payment_status),
            "recentOrders": DashboardService.get_recent_orders(db),
            "topProducts": DashboardService.get_top_products(db)
        }

    @staticmethod
    def get_recent_orders(db: Session, limit: int = 5) -> List[Dict[str, Any]]:
        orders = db.query(Order).order_by(desc(Order.created_at), desc(Order.id)).limit(limit).all()

        result = []
        for order in orders:
            customer = order.user
            prescription = order.prescription
            result.append({
                "id": order.id,
                "orderNumber": order.order_number,
                "total": order.total,
                "status": order.status,
                "paymentStatus": order.payment_status,
                "createdAt": order.created_at.isoformat() if order.created_at else None,
                "customer": {
                    "id": customer.id,
                    "name": customer.name,
                    "phone": customer.phone,
                    "email": customer.email
                } if customer else None,
                "prescription": {
                    "id": prescription.id,
                    "status": prescription.status,
                    "fileUrl": prescription.file_url,
                    "originalName": prescription.original_name
                } if prescription else None
            })
        return result

    @staticmethod
    def get_top_products(db: Session, limit: int = 5) -> List[Dict[str, Any]]:
        """Best sellers by units ordered"""
        quantity = func.sum(OrderItem.quantity).label("quantity")
        rows = db.query(
            OrderItem.product_id,
            func.max(OrderItem.name).label("name"),
            quantity,
            func.sum(OrderItem.quantity * OrderItem.price).label("revenue")
        ).filter(
            OrderItem.product_id.isnot(None)
        ).group_by(OrderItem.product_id).order_by(desc(quantity)).limit(limit).all()

        products = {
            p.id: p for p in db.query(Product).filter(Product.id.in_([row.product_id for row in rows])).all()
        } if rows else {}

        result = []
        for row in rows:
            product = products.get(row.product_id)
            result.append({
                "productId": row.product_id,
                "name": product.name if product else row.name,
                "image": product.primary_image if product else None,
                "quantity": int(row.quantity or 0),
                "revenue": float(row.revenue or 0)
            })
        return result
