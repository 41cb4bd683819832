"""Checkout and order state changes shared by the order, refund and admin
views.

Nothing here commits; the calling view owns the transaction.
"""
from eselling.extensions import db
from eselling.models import (
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    Seller,
)
from eselling.services.order_number_service import insert_with_order_number
from decimal import Decimal
import logging

logger = logging.getLogger(__name__)

# Orders in these states no longer hold stock
STOCK_RELEASED_STATUSES = frozenset({
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
    OrderStatus.REFUNDED,
})

CUSTOMER_CANCELLABLE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
})

# Fulfilment steps a seller may set on their own orders
SELLER_SETTABLE_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.PICKED_UP,
    OrderStatus.CANCELLED,
})


class CheckoutError(ValueError):
    pass


class OrderStateError(ValueError):
    pass


def _requested_lines(raw_items):
    """Merge ``[{'product_id': .., 'quantity': ..}]`` into {id: qty}."""
    if not isinstance(raw_items, list):
        raise CheckoutError('items must be a list')

    wanted = {}
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise CheckoutError('Each item needs product_id and quantity')
        try:
            product_id = int(raw.get('product_id'))
            quantity = int(raw.get('quantity'))
        except (TypeError, ValueError):
            raise CheckoutError('Each item needs product_id and quantity')
        if quantity < 1:
            raise CheckoutError('Quantity must be at least 1')
        wanted[product_id] = wanted.get(product_id, 0) + quantity
    return wanted


def collect_checkout_lines(user_id, raw_items=None):
    """Resolve the items being bought into ``[(product, quantity)]``.

    Uses the customer's cart when ``raw_items`` is empty.
    """
    if raw_items:
        wanted = _requested_lines(raw_items)
    else:
        wanted = {}
        for item in CartItem.query.filter_by(user_id=user_id).all():
            wanted[item.product_id] = item.quantity
        if not wanted:
            raise CheckoutError('Cart is empty')

    products = {
        p.id: p for p in Product.query.filter(
            Product.id.in_(list(wanted))).all()
    }

    lines = []
    for product_id, quantity in wanted.items():
        product = products.get(product_id)
        if (
            product is None
            or not product.is_active
            or product.is_deleted
            or product.seller.deleted_at is not None
        ):
            raise CheckoutError(
                f'Product not found or inactive: {product_id}')
        if product.stock < quantity:
            raise CheckoutError(
                f'Insufficient stock for product: {product.name}')
        lines.append((product, quantity))
    return lines


def group_by_seller(lines):
    groups = {}
    for product, quantity in lines:
        groups.setdefault(product.seller_id, []).append((product, quantity))
    return groups


def initial_status(payment_method):
    # Cash on pickup needs no payment verification step
    if payment_method == PaymentMethod.COP:
        return OrderStatus.CONFIRMED
    return OrderStatus.PENDING


def place_orders(user, lines, payment_method, notes=None, receipt_url=None):
    """Create one Order per seller from ``lines`` and reserve stock.

    Raises OrderNumberExhausted when no order number can be allocated.
    Stock going negative under a concurrent checkout surfaces as an
    IntegrityError on the final flush.
    """
    orders = []
    for seller_id, seller_lines in group_by_seller(lines).items():
        subtotal = sum(
            (Decimal(product.price) * quantity
             for product, quantity in seller_lines),
            Decimal('0'),
        )
        order = Order(
            user_id=user.id,
            seller_id=seller_id,
            status=initial_status(payment_method),
            subtotal=subtotal,
            # Pickup-only: no tax or shipping
            total_amount=subtotal,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            notes=notes,
            payment_receipt_url=receipt_url,
        )
        for product, quantity in seller_lines:
            order.items.append(OrderItem(
                product_id=product.id,
                quantity=quantity,
                price=product.price,
                total_price=Decimal(product.price) * quantity,
                product_name=product.name,
                product_image=product.main_image_url,
            ))
        insert_with_order_number(order)
        orders.append(order)

    for product, quantity in lines:
        product.stock = Product.stock - quantity
        product.sold_count = Product.sold_count + quantity

    for order in orders:
        db.session.query(Seller).filter(Seller.id == order.seller_id).update(
            {Seller.order_count: Seller.order_count + 1},
            synchronize_session=False,
        )

    CartItem.query.filter(
        CartItem.user_id == user.id,
        CartItem.product_id.in_([p.id for p, _ in lines]),
    ).delete(synchronize_session=False)

    db.session.flush()
    logger.info(
        "Placed %s order(s) for user %s: %s",
        len(orders),
        user.id,
        ', '.join(o.order_number for o in orders),
    )
    return orders


def restore_order_stock(order):
    for item in order.items:
        product = db.session.get(Product, item.product_id)
        if product:
            product.stock = Product.stock + item.quantity
            product.sold_count = Product.sold_count - item.quantity


def change_status(order, new_status):
    """Move ``order`` to ``new_status``, releasing its stock when the
    order leaves the fulfilment flow.
    """
    if new_status == order.status:
        return False
    if order.status in STOCK_RELEASED_STATUSES:
        raise OrderStateError(
            f'Order is {order.status.value} and can no longer change status')
    if new_status in STOCK_RELEASED_STATUSES:
        restore_order_stock(order)
    order.status = new_status
    return True
