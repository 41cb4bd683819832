from eselling.extensions import db
from eselling.models import (
    Seller,
    Product,
    Order,
    OrderStatus,
    PaymentStatus,
)
from sqlalchemy import func
import logging

logger = logging.getLogger(__name__)


def live_product_count(seller_id):
    return Product.query.filter(
        Product.seller_id == seller_id,
        Product.deleted_at.is_(None),
    ).count()


def live_order_count(seller_id):
    return Order.query.by_seller(seller_id).count()


def recount_seller_counters(seller: Seller) -> bool:
    """Reset the denormalized counters from the child rows.

    Returns True when either counter had drifted.
    """
    products = live_product_count(seller.id)
    orders = live_order_count(seller.id)
    drifted = (
        seller.product_count != products or seller.order_count != orders
    )
    if drifted:
        logger.info(
            "Seller %s counters drifted: products %s->%s orders %s->%s",
            seller.id,
            seller.product_count,
            products,
            seller.order_count,
            orders,
        )
        seller.product_count = products
        seller.order_count = orders
    return drifted


def recount_all_sellers():
    fixed = 0
    for seller in Seller.query.order_by(Seller.id).all():
        if recount_seller_counters(seller):
            fixed += 1
    db.session.commit()
    return fixed


def _revenue(seller_id, payment_status):
    total = db.session.query(
        func.coalesce(func.sum(Order.total_amount), 0)
    ).filter(
        Order.seller_id == seller_id,
        Order.payment_status == payment_status,
    ).scalar()
    return float(total or 0)


def seller_order_stats(seller_id):
    orders_q = Order.query.by_seller(seller_id)
    return {
        'total_orders': orders_q.count(),
        'pending_orders': orders_q.by_status(OrderStatus.PENDING).count(),
        'confirmed_orders': orders_q.by_status(
            OrderStatus.CONFIRMED).count(),
        'ready_for_pickup_orders': orders_q.by_status(
            OrderStatus.READY_FOR_PICKUP).count(),
        'picked_up_orders': orders_q.by_status(
            OrderStatus.PICKED_UP).count(),
        'cancelled_orders': orders_q.by_status(
            OrderStatus.CANCELLED).count(),
        'total_revenue': _revenue(seller_id, PaymentStatus.PAID),
        'pending_revenue': _revenue(seller_id, PaymentStatus.PENDING),
    }
