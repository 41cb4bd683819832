from flask import Blueprint, request, jsonify
from flask_login import current_user
from eselling.extensions import db
from eselling.middleware import role_required, seller_required
from eselling.models import (
    Order,
    OrderStatus,
    PaymentStatus,
    Refund,
    RefundStatus,
    coerce_enum,
)
from eselling.serializers import refund_to_dict
from eselling.services.audit_service import log_audit
from eselling.services.order_service import change_status, OrderStateError
from eselling.utils import request_data
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('refunds', __name__)

MAX_TEXT_LENGTH = 1000


@bp.route('/api/orders/<int:order_id>/refund', methods=['POST'])
@role_required('CUSTOMER')
def request_refund(order_id):
    data = request_data()
    reason = (data.get('reason') or '').strip()
    if not reason:
        return jsonify({'error': 'A reason is required'}), 400
    if len(reason) > MAX_TEXT_LENGTH:
        return jsonify({
            'error': f'Reason is too long (max {MAX_TEXT_LENGTH} characters)'
        }), 400

    order = Order.query.filter_by(
        id=order_id,
        user_id=current_user.id,
    ).first_or_404(description='Order not found.')

    if order.status != OrderStatus.PICKED_UP:
        return jsonify({
            'error': (
                'Refund can only be requested after the order has been '
                'picked up.'
            )
        }), 400

    if order.refund is not None:
        return jsonify({
            'error': 'Refund request already exists for this order.'
        }), 400

    refund = Refund(
        order_id=order.id,
        user_id=current_user.id,
        reason=reason,
        status=RefundStatus.PENDING,
        requested_at=datetime.utcnow(),
    )
    db.session.add(refund)
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='REFUND_REQUEST',
        target_type='REFUND',
        target_id=refund.id,
        payload={'order_id': order.id, 'order_number': order.order_number}
    )

    return jsonify({
        'ok': True,
        'message': 'Refund request submitted successfully.',
        'refund': refund_to_dict(refund),
    }), 201


@bp.route('/api/refunds', methods=['GET'])
@role_required('CUSTOMER')
def my_refunds():
    refunds = Refund.query.with_order().for_user(current_user.id).order_by(
        Refund.requested_at.desc(), Refund.id.desc()).all()
    return jsonify({
        'ok': True,
        'refunds': [refund_to_dict(r) for r in refunds],
    })


@bp.route('/api/seller/refunds', methods=['GET'])
@seller_required()
def seller_refunds(seller):
    query = Refund.query.with_order().for_seller(seller.id)
    status = (request.args.get('status') or '').strip()
    if status:
        try:
            query = query.by_status(status)
        except ValueError:
            return jsonify({'error': f'Unknown status: {status}'}), 400
    refunds = query.order_by(
        Refund.requested_at.desc(), Refund.id.desc()).all()
    return jsonify({
        'ok': True,
        'refunds': [refund_to_dict(r) for r in refunds],
    })


@bp.route('/api/refunds/<int:refund_id>', methods=['PATCH'])
@seller_required()
def respond_to_refund(refund_id, seller):
    refund = Refund.query.for_seller(seller.id).filter(
        Refund.id == refund_id
    ).first_or_404(description='Refund request not found.')

    data = request_data()
    try:
        decision = coerce_enum(RefundStatus, data.get('status'))
    except ValueError:
        decision = None
    if decision not in (RefundStatus.APPROVED, RefundStatus.REJECTED):
        return jsonify({
            'error': 'status must be approved or rejected'
        }), 400

    seller_response = (data.get('seller_response') or '').strip() or None
    if seller_response and len(seller_response) > MAX_TEXT_LENGTH:
        return jsonify({
            'error': (
                f'Response is too long (max {MAX_TEXT_LENGTH} characters)'
            )
        }), 400

    if refund.status != RefundStatus.PENDING:
        return jsonify({
            'error': 'Refund request has already been processed.'
        }), 400

    refund.status = decision
    refund.responded_at = datetime.utcnow()
    if seller_response:
        refund.seller_response = seller_response

    order = refund.order
    if decision == RefundStatus.APPROVED:
        try:
            change_status(order, OrderStatus.REFUNDED)
        except OrderStateError as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        order.payment_status = PaymentStatus.REFUNDED

    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action=f'REFUND_{decision.name}',
        target_type='REFUND',
        target_id=refund.id,
        payload={
            'order_id': order.id,
            'order_status': order.status.value,
        }
    )

    return jsonify({
        'ok': True,
        'message': f'Refund request {decision.value} successfully.',
        'refund': refund_to_dict(refund),
    })
