from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, current_user
from eselling.extensions import db
from eselling.middleware import role_required
from eselling.models import (
    Admin,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Seller,
    SellerVerificationStatus,
    coerce_enum,
)
from eselling.serializers import (
    admin_to_dict,
    order_to_dict,
    pagination_to_dict,
    seller_to_dict,
    user_to_dict,
)
from eselling.services.audit_service import log_audit
from eselling.services.order_service import change_status, OrderStateError
from eselling.utils import (
    request_data,
    paginate_query,
    page_args,
    parse_int,
    save_upload,
    remove_upload,
    UploadError,
)
from sqlalchemy.orm import selectinload
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('admin', __name__)

# Payment methods that go through the admin's account
ADMIN_COLLECTED_METHODS = (PaymentMethod.GCASH, PaymentMethod.COP)


def _application_to_dict(seller):
    payload = seller_to_dict(seller)
    payload['id_image_path'] = seller.id_image_path
    payload['user'] = user_to_dict(seller.user) if seller.user else None
    return payload


def _orders_with_details(query):
    return query.options(
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.seller),
        selectinload(Order.user),
    )


def _admin_order_dict(order):
    return order_to_dict(order, with_customer=True)


def _gcash_payload(admin):
    return {
        'gcash_qr_url': admin.gcash_qr_url if admin else None,
        'gcash_number': admin.gcash_number if admin else None,
    }


def _pending_gcash_order_or_error(order_id):
    """Returns (order, None) or (None, error response)."""
    order = db.get_or_404(Order, order_id, description='Order not found.')
    if order.payment_method != PaymentMethod.GCASH:
        return None, (jsonify({
            'error': 'This order is not a GCash payment.'
        }), 400)
    if order.payment_status != PaymentStatus.PENDING:
        return None, (jsonify({
            'error': 'This payment has already been processed.'
        }), 400)
    return order, None


@bp.route('/api/admin/login', methods=['POST'])
def login():
    data = request_data()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400

    admin = Admin.query.filter_by(email=email).first()
    if not admin or not admin.check_password(password):
        log_audit(
            actor_id=None,
            actor_role='ANONYMOUS',
            action='LOGIN_FAILED',
            target_type='ADMIN',
            payload={'email': email}
        )
        return jsonify({'error': 'Invalid admin credentials.'}), 401

    login_user(admin, remember=bool(data.get('remember')))

    log_audit(
        actor_id=admin.id,
        actor_role=admin.role,
        action='LOGIN_SUCCESS',
        target_type='ADMIN',
        target_id=admin.id,
    )

    return jsonify({
        'ok': True,
        'message': 'Admin login successful.',
        'admin': admin_to_dict(admin),
    })


@bp.route('/api/admin/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated and current_user.role == 'ADMIN':
        log_audit(
            actor_id=current_user.id,
            actor_role=current_user.role,
            action='LOGOUT',
            target_type='ADMIN',
            target_id=current_user.id,
        )
        logout_user()
    return jsonify({'ok': True, 'message': 'Admin logged out.'})


@bp.route('/api/admin/user', methods=['GET'])
@role_required('ADMIN')
def current_admin():
    return jsonify({'ok': True, 'admin': admin_to_dict(current_user)})


@bp.route('/api/admin/dashboard', methods=['GET'])
@role_required('ADMIN')
def dashboard():
    live = Seller.query.filter(Seller.deleted_at.is_(None))
    stats = {
        'total_sellers': live.count(),
        'pending_verifications': live.filter(
            Seller.verification_status == SellerVerificationStatus.UNVERIFIED
        ).count(),
        'verified_sellers': live.filter(
            Seller.verification_status == SellerVerificationStatus.VERIFIED
        ).count(),
        'active_sellers': live.filter(Seller.is_active.is_(True)).count(),
    }

    recent = live.filter(
        Seller.verification_status == SellerVerificationStatus.UNVERIFIED
    ).order_by(Seller.created_at.desc(), Seller.id.desc()).limit(5).all()

    return jsonify({
        'ok': True,
        'stats': stats,
        'recent_applications': [_application_to_dict(s) for s in recent],
    })


@bp.route('/api/admin/pending-applications', methods=['GET'])
@role_required('ADMIN')
def pending_applications():
    page, per_page = page_args()
    query = Seller.query.options(selectinload(Seller.user)).filter(
        Seller.verification_status == SellerVerificationStatus.UNVERIFIED,
        Seller.deleted_at.is_(None),
    ).order_by(Seller.created_at.desc(), Seller.id.desc())
    result = paginate_query(query, page=page, per_page=per_page)
    payload = pagination_to_dict(result, _application_to_dict)
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/admin/process-application/<int:seller_id>',
          methods=['POST'])
@role_required('ADMIN')
def process_application(seller_id):
    data = request_data()
    action = (data.get('action') or '').strip().lower()
    notes = (data.get('notes') or '').strip() or None

    if action not in ('approve', 'reject'):
        return jsonify({'error': 'action must be approve or reject'}), 400
    if notes and len(notes) > 500:
        return jsonify({'error': 'Notes are too long (max 500 characters)'}), 400

    seller = db.get_or_404(Seller, seller_id, description='Seller not found.')

    if seller.verification_status != SellerVerificationStatus.UNVERIFIED:
        return jsonify({
            'error': 'Application has already been processed.'
        }), 400

    if action == 'approve':
        seller.verification_status = SellerVerificationStatus.VERIFIED
        message = 'Seller application approved successfully.'
    else:
        seller.verification_status = SellerVerificationStatus.REJECTED
        message = 'Seller application rejected.'
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action=f'SELLER_APPLICATION_{action.upper()}',
        target_type='SELLER',
        target_id=seller.id,
        payload={'notes': notes}
    )

    return jsonify({
        'ok': True,
        'message': message,
        'seller': _application_to_dict(seller),
    })


@bp.route('/api/admin/gcash-settings', methods=['GET'])
def gcash_settings():
    """Public: customers need the number/QR code to pay with GCash."""
    if current_user.is_authenticated and current_user.role == 'ADMIN':
        admin = current_user
    else:
        admin = Admin.query.order_by(Admin.id).first()
    return jsonify({'ok': True, **_gcash_payload(admin)})


@bp.route('/api/admin/gcash-settings', methods=['POST'])
@role_required('ADMIN')
def update_gcash_settings():
    admin = db.session.get(Admin, current_user.id)
    data = request_data()

    if 'gcash_number' in data:
        number = (data.get('gcash_number') or '').strip() or None
        if number and len(number) > 20:
            return jsonify({
                'error': 'GCash number is too long (max 20 characters)'
            }), 400
        admin.gcash_number = number

    qr = request.files.get('gcash_qr')
    if qr and qr.filename:
        try:
            url = save_upload(qr, 'admin/gcash')
        except UploadError as e:
            return jsonify({'error': str(e)}), 400
        remove_upload(admin.gcash_qr_url)
        admin.gcash_qr_url = url

    db.session.commit()

    log_audit(
        actor_id=admin.id,
        actor_role=admin.role,
        action='GCASH_SETTINGS_UPDATE',
        target_type='ADMIN',
        target_id=admin.id,
        payload={'gcash_number': admin.gcash_number}
    )

    return jsonify({
        'ok': True,
        'message': 'GCash settings updated successfully.',
        **_gcash_payload(admin),
    })


@bp.route('/api/admin/pending-payments', methods=['GET'])
@role_required('ADMIN')
def pending_payments():
    page, per_page = page_args()
    query = _orders_with_details(
        Order.query.filter(Order.payment_method == PaymentMethod.GCASH)
        .by_payment_status(PaymentStatus.PENDING)
    ).order_by(Order.created_at.desc(), Order.id.desc())
    result = paginate_query(query, page=page, per_page=per_page)
    payload = pagination_to_dict(result, _admin_order_dict)
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/admin/verify-payment/<int:order_id>', methods=['POST'])
@role_required('ADMIN')
def verify_payment(order_id):
    order, error = _pending_gcash_order_or_error(order_id)
    if error:
        return error

    try:
        change_status(order, OrderStatus.PAYMENT_VERIFIED)
    except OrderStateError as e:
        return jsonify({'error': str(e)}), 400
    order.payment_status = PaymentStatus.PAID
    order.paid_at = datetime.utcnow()
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PAYMENT_VERIFIED',
        target_type='ORDER',
        target_id=order.id,
        payload={
            'order_number': order.order_number,
            'amount': order.total_amount,
        }
    )

    return jsonify({
        'ok': True,
        'message': 'Payment verified successfully.',
        'order': _admin_order_dict(order),
    })


@bp.route('/api/admin/reject-payment/<int:order_id>', methods=['POST'])
@role_required('ADMIN')
def reject_payment(order_id):
    reason = (request_data().get('reason') or '').strip()
    if not reason:
        return jsonify({'error': 'A reason is required'}), 400
    if len(reason) > 500:
        return jsonify({'error': 'Reason is too long (max 500 characters)'}), 400

    order, error = _pending_gcash_order_or_error(order_id)
    if error:
        return error

    try:
        change_status(order, OrderStatus.REJECTED)
    except OrderStateError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    order.payment_status = PaymentStatus.FAILED
    order.admin_notes = reason
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PAYMENT_REJECTED',
        target_type='ORDER',
        target_id=order.id,
        payload={'order_number': order.order_number, 'reason': reason}
    )

    return jsonify({
        'ok': True,
        'message': 'Payment rejected successfully.',
        'order': _admin_order_dict(order),
    })


@bp.route('/api/admin/all-payments', methods=['GET'])
@role_required('ADMIN')
def all_payments():
    query = Order.query.filter(
        Order.payment_method.in_(ADMIN_COLLECTED_METHODS))

    seller_id = request.args.get('seller_id')
    if seller_id:
        seller_id = parse_int(seller_id)
        if seller_id is None:
            return jsonify({'error': 'seller_id must be a number'}), 400
        query = query.by_seller(seller_id)

    payment_method = request.args.get('payment_method')
    if payment_method:
        try:
            query = query.filter(Order.payment_method == coerce_enum(
                PaymentMethod, payment_method))
        except ValueError:
            return jsonify({
                'error': f'Unknown payment method: {payment_method}'
            }), 400

    payment_status = request.args.get('payment_status')
    if payment_status:
        try:
            query = query.by_payment_status(payment_status)
        except ValueError:
            return jsonify({
                'error': f'Unknown payment status: {payment_status}'
            }), 400

    page, per_page = page_args()
    result = paginate_query(
        _orders_with_details(query).order_by(
            Order.created_at.desc(), Order.id.desc()),
        page=page,
        per_page=per_page,
    )
    payload = pagination_to_dict(result, _admin_order_dict)
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/admin/mark-distributed/<int:order_id>', methods=['POST'])
@role_required('ADMIN')
def mark_distributed(order_id):
    order = db.get_or_404(Order, order_id, description='Order not found.')

    if order.payment_distributed:
        return jsonify({
            'error': 'Payment has already been marked as distributed.'
        }), 400
    if order.payment_status != PaymentStatus.PAID:
        return jsonify({
            'error': 'Only paid orders can be paid out to the seller.'
        }), 400

    order.payment_distributed = True
    order.payment_distributed_at = datetime.utcnow()
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PAYMENT_DISTRIBUTED',
        target_type='ORDER',
        target_id=order.id,
        payload={
            'seller_id': order.seller_id,
            'amount': order.total_amount,
        }
    )

    return jsonify({
        'ok': True,
        'message': 'Payment marked as distributed successfully.',
        'order': _admin_order_dict(order),
    })
