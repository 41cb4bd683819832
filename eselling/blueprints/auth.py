from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, current_user
from eselling.extensions import db
from eselling.middleware import role_required
from eselling.models import User
from eselling.serializers import user_to_dict, seller_to_dict
from eselling.services.audit_service import log_audit
from eselling.utils import (
    request_data,
    save_upload,
    remove_upload,
    UploadError,
)
from datetime import datetime
import logging
import re

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 8


def _validate_password(password, confirmation):
    if len(password) < MIN_PASSWORD_LENGTH:
        return (
            f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
        )
    if password != confirmation:
        return 'Password confirmation does not match'
    return None


def _user_payload(user):
    payload = user_to_dict(user)
    payload['seller'] = seller_to_dict(user.seller) if user.seller else None
    return payload


@bp.route('/api/register', methods=['POST'])
def register():
    data = request_data()
    first_name = (data.get('first_name') or '').strip()
    last_name = (data.get('last_name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    confirmation = data.get('password_confirmation') or ''
    contact_number = (data.get('contact_number') or '').strip() or None

    if not first_name or not last_name:
        return jsonify({'error': 'First and last name are required'}), 400
    if not EMAIL_RE.match(email):
        return jsonify({'error': 'A valid email is required'}), 400
    error = _validate_password(password, confirmation)
    if error:
        return jsonify({'error': error}), 400

    # Check if email already exists
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    user = User(
        name=f'{first_name} {last_name}',
        email=email,
        contact_number=contact_number,
    )
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    log_audit(
        actor_id=user.id,
        actor_role=user.role,
        action='REGISTER_USER',
        target_type='USER',
        target_id=user.id,
        payload={'email': email}
    )

    # Auto login
    login_user(user, remember=True)

    return jsonify({'ok': True, 'user': _user_payload(user)}), 201


@bp.route('/api/login', methods=['POST'])
def login():
    data = request_data()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password cannot be empty'}), 400

    user = User.query.filter_by(email=email).first()

    if user and user.check_password(password) and user.is_active:
        login_user(user, remember=True)
        user.last_login_at = datetime.utcnow()
        db.session.commit()

        log_audit(
            actor_id=user.id,
            actor_role=user.role,
            action='LOGIN_SUCCESS',
            target_type='USER',
            target_id=user.id,
            payload={'event': 'login_success'}
        )
        return jsonify({'ok': True, 'user': _user_payload(user)})

    log_audit(
        actor_id=None,
        actor_role='ANONYMOUS',
        action='LOGIN_FAILED',
        target_type='USER',
        target_id=None,
        payload={
            'reason': 'invalid_credentials' if user else 'user_not_found'})
    return jsonify({'error': 'Invalid email or password'}), 401


@bp.route('/api/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated:
        log_audit(
            actor_id=current_user.id,
            actor_role=current_user.role,
            action='LOGOUT',
            target_type='USER',
            target_id=current_user.id,
        )
        logout_user()
    return jsonify({'ok': True, 'message': 'Logged out successfully'})


@bp.route('/api/user', methods=['GET'])
@role_required('CUSTOMER')
def current_account():
    return jsonify({'ok': True, 'user': _user_payload(current_user)})


@bp.route('/api/user', methods=['PUT', 'POST'])
@role_required('CUSTOMER')
def update_account():
    data = request_data()
    user = current_user
    changed = []

    if 'email' in data:
        email = (data.get('email') or '').strip().lower()
        if not EMAIL_RE.match(email):
            return jsonify({'error': 'A valid email is required'}), 400
        taken = User.query.filter(
            User.email == email, User.id != user.id).first()
        if taken:
            return jsonify({'error': 'Email already registered'}), 400
        if email != user.email:
            user.email = email
            changed.append('email')

    if 'contact_number' in data:
        user.contact_number = (
            (data.get('contact_number') or '').strip() or None)
        changed.append('contact_number')

    new_password = data.get('new_password') or data.get('password')
    if new_password:
        if not user.check_password(data.get('current_password') or ''):
            return jsonify({'error': 'Current password is incorrect'}), 400
        error = _validate_password(
            new_password,
            data.get('new_password_confirmation')
            or data.get('password_confirmation') or '',
        )
        if error:
            return jsonify({'error': error}), 400
        user.set_password(new_password)
        changed.append('password')

    picture = request.files.get('profile_picture')
    if picture and picture.filename:
        try:
            url = save_upload(picture, 'profile_pictures', f'u{user.id}_')
        except UploadError as e:
            return jsonify({'error': str(e)}), 400
        remove_upload(user.profile_picture_url)
        user.profile_picture_url = url
        changed.append('profile_picture')

    db.session.commit()

    if changed:
        log_audit(
            actor_id=user.id,
            actor_role=user.role,
            action='USER_UPDATE',
            target_type='USER',
            target_id=user.id,
            payload={'fields': changed}
        )

    return jsonify({'ok': True, 'user': _user_payload(user)})


@bp.route('/api/user', methods=['DELETE'])
@role_required('CUSTOMER')
def delete_account():
    user = db.session.get(User, current_user.id)
    user_id = user.id
    email = user.email

    logout_user()
    remove_upload(user.profile_picture_url)
    db.session.delete(user)
    db.session.commit()

    log_audit(
        actor_id=user_id,
        actor_role='CUSTOMER',
        action='USER_DELETE',
        target_type='USER',
        target_id=user_id,
        payload={'email': email}
    )
    return jsonify({'ok': True, 'message': 'Account deleted'})
