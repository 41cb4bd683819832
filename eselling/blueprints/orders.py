from flask import Blueprint, request, jsonify
from flask_login import current_user
from eselling.extensions import db
from eselling.middleware import role_required, seller_required
from eselling.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    coerce_enum,
)
from eselling.serializers import order_to_dict, pagination_to_dict
from eselling.services.audit_service import log_audit
from eselling.services.order_number_service import OrderNumberExhausted
from eselling.services.order_service import (
    CheckoutError,
    OrderStateError,
    SELLER_SETTABLE_STATUSES,
    CUSTOMER_CANCELLABLE_STATUSES,
    change_status,
    collect_checkout_lines,
    place_orders,
    restore_order_stock,
)
from eselling.services.seller_stats_service import seller_order_stats
from eselling.utils import (
    request_data,
    json_field,
    paginate_query,
    page_args,
    save_upload,
    UploadError,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('orders', __name__)


def _with_items(query):
    return query.options(
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.seller),
    )


def _status_filter(query):
    """Apply ?status=; returns (query, error)."""
    status = (request.args.get('status') or '').strip()
    if not status:
        return query, None
    try:
        return query.by_status(status), None
    except ValueError:
        return None, f'Unknown status: {status}'


def _own_order_or_404(order_id):
    return Order.query.filter_by(
        id=order_id,
        user_id=current_user.id,
    ).first_or_404(description='Order not found.')


@bp.route('/api/orders', methods=['POST'])
@role_required('CUSTOMER')
def create_order():
    data = request_data()

    try:
        payment_method = coerce_enum(
            PaymentMethod, data.get('payment_method'))
    except ValueError:
        return jsonify({
            'error': 'payment_method must be one of: '
            + ', '.join(m.value for m in PaymentMethod)
        }), 400

    notes = (data.get('notes') or '').strip() or None

    try:
        lines = collect_checkout_lines(
            current_user.id, json_field(data, 'items'))
    except CheckoutError as e:
        return jsonify({'error': str(e)}), 400

    receipt_url = None
    receipt = request.files.get('payment_receipt')
    if receipt and receipt.filename:
        try:
            receipt_url = save_upload(receipt, 'orders/receipts')
        except UploadError as e:
            return jsonify({'error': str(e)}), 400

    try:
        orders = place_orders(
            current_user,
            lines,
            payment_method,
            notes=notes,
            receipt_url=receipt_url,
        )
        db.session.commit()
    except OrderNumberExhausted as e:
        db.session.rollback()
        logger.error("Checkout failed for user %s: %s", current_user.id, e)
        return jsonify({
            'error': 'Could not allocate an order number, please retry'
        }), 503
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            "Checkout for user %s lost a stock race", current_user.id)
        return jsonify({
            'error': 'Insufficient stock for one or more products'
        }), 400

    for order in orders:
        log_audit(
            actor_id=current_user.id,
            actor_role=current_user.role,
            action='ORDER_CREATE',
            target_type='ORDER',
            target_id=order.id,
            payload={
                'order_number': order.order_number,
                'seller_id': order.seller_id,
                'total_amount': order.total_amount,
                'payment_method': order.payment_method.value,
            }
        )

    if len(orders) > 1:
        message = (
            'Your order has been split into multiple orders due to '
            'different sellers.'
        )
    else:
        message = 'Order created successfully.'

    return jsonify({
        'ok': True,
        'message': message,
        'orders': [order_to_dict(o) for o in orders],
        'total_orders': len(orders),
    }), 201


@bp.route('/api/orders', methods=['GET'])
@role_required('CUSTOMER')
def order_list():
    query = _with_items(
        Order.query.filter(Order.user_id == current_user.id)
    )
    query, error = _status_filter(query)
    if error:
        return jsonify({'error': error}), 400

    page, per_page = page_args()
    result = paginate_query(
        query.order_by(Order.created_at.desc(), Order.id.desc()),
        page=page,
        per_page=per_page,
    )
    payload = pagination_to_dict(result, order_to_dict)
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/orders/<int:order_id>', methods=['GET'])
def order_detail(order_id):
    order = db.get_or_404(Order, order_id, description='Order not found.')

    is_buyer = False
    if current_user.role == 'ADMIN':
        allowed = True
    else:
        seller = current_user.seller
        is_buyer = order.user_id == current_user.id
        allowed = is_buyer or (
            seller is not None and order.seller_id == seller.id)
    if not allowed:
        return jsonify({'error': 'Order not found.'}), 404

    return jsonify({
        'ok': True,
        'order': order_to_dict(order, with_customer=not is_buyer),
    })


@bp.route('/api/orders/<int:order_id>/status', methods=['PATCH'])
@role_required('ADMIN', 'CUSTOMER')
def update_status(order_id):
    """Admins may set any status; a seller only fulfilment steps on
    their own orders."""
    order = db.get_or_404(Order, order_id, description='Order not found.')
    data = request_data()

    try:
        new_status = coerce_enum(OrderStatus, data.get('status'))
    except ValueError:
        return jsonify({'error': 'Invalid status'}), 400

    is_admin = current_user.role == 'ADMIN'
    if not is_admin:
        seller = current_user.seller
        if seller is None or order.seller_id != seller.id:
            return jsonify({
                'error': 'No permission to access this resource'
            }), 403
        if new_status not in SELLER_SETTABLE_STATUSES:
            return jsonify({
                'error': f'Sellers cannot set status {new_status.value}'
            }), 403

    old_status = order.status
    try:
        change_status(order, new_status)
    except OrderStateError as e:
        return jsonify({'error': str(e)}), 400

    if is_admin and 'admin_notes' in data:
        order.admin_notes = (data.get('admin_notes') or '').strip() or None

    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='ORDER_STATUS_UPDATE',
        target_type='ORDER',
        target_id=order.id,
        payload={'from': old_status.value, 'to': new_status.value}
    )

    return jsonify({
        'ok': True,
        'message': 'Order status updated successfully.',
        'order': order_to_dict(order, with_customer=True),
    })


@bp.route('/api/orders/<int:order_id>/payment-status', methods=['PATCH'])
@role_required('ADMIN')
def update_payment_status(order_id):
    order = db.get_or_404(Order, order_id, description='Order not found.')

    try:
        payment_status = coerce_enum(
            PaymentStatus, request_data().get('payment_status'))
    except ValueError:
        return jsonify({'error': 'Invalid payment status'}), 400

    old_status = order.payment_status
    order.payment_status = payment_status
    if payment_status == PaymentStatus.PAID and order.paid_at is None:
        order.paid_at = datetime.utcnow()
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PAYMENT_STATUS_UPDATE',
        target_type='ORDER',
        target_id=order.id,
        payload={'from': old_status.value, 'to': payment_status.value}
    )

    return jsonify({
        'ok': True,
        'message': 'Payment status updated successfully.',
        'order': order_to_dict(order, with_customer=True),
    })


@bp.route('/api/orders/<int:order_id>/cancel', methods=['POST'])
@role_required('CUSTOMER')
def cancel_order(order_id):
    order = _own_order_or_404(order_id)

    if order.status not in CUSTOMER_CANCELLABLE_STATUSES:
        return jsonify({
            'error': 'Order cannot be cancelled at this stage.'
        }), 400

    status_before = order.status
    restore_order_stock(order)
    order.status = OrderStatus.CANCELLED
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='ORDER_CANCEL_USER',
        target_type='ORDER',
        target_id=order.id,
        payload={'status_before': status_before.value}
    )

    return jsonify({
        'ok': True,
        'message': 'Order cancelled successfully.',
        'order': order_to_dict(order),
    })


@bp.route('/api/orders/<int:order_id>/confirm-delivery', methods=['POST'])
@role_required('CUSTOMER')
def confirm_delivery(order_id):
    order = _own_order_or_404(order_id)

    if order.delivery_confirmed_by_customer:
        return jsonify({
            'error': 'Delivery has already been confirmed for this order.'
        }), 400

    order.delivery_confirmed_by_customer = True
    order.customer_delivery_confirmed_at = datetime.utcnow()
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='ORDER_DELIVERY_CONFIRMED',
        target_type='ORDER',
        target_id=order.id,
        payload={'status': order.status.value}
    )

    return jsonify({
        'ok': True,
        'message': 'Delivery confirmed successfully.',
        'order': order_to_dict(order),
    })


@bp.route('/api/seller/orders', methods=['GET'])
@seller_required()
def seller_orders(seller):
    query = _with_items(Order.query.by_seller(seller.id)).options(
        selectinload(Order.user))
    query, error = _status_filter(query)
    if error:
        return jsonify({'error': error}), 400

    page, per_page = page_args()
    result = paginate_query(
        query.order_by(Order.created_at.desc(), Order.id.desc()),
        page=page,
        per_page=per_page,
    )
    payload = pagination_to_dict(
        result, lambda o: order_to_dict(o, with_customer=True))
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/seller/orders/stats', methods=['GET'])
@seller_required()
def seller_stats(seller):
    return jsonify({'ok': True, 'stats': seller_order_stats(seller.id)})
