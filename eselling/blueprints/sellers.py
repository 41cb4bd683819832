from flask import Blueprint, request, jsonify
from flask_login import current_user
from eselling.extensions import db
from eselling.middleware import role_required, seller_required
from eselling.models import Seller, SellerVerificationStatus
from eselling.serializers import seller_to_dict
from eselling.services.audit_service import log_audit
from eselling.utils import (
    request_data,
    save_upload,
    remove_upload,
    UploadError,
)
import logging
import re

logger = logging.getLogger(__name__)

bp = Blueprint('sellers', __name__)

SLUG_RE = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _clean_profile_fields(data, partial=False):
    """Validate the editable seller profile fields.

    Returns ``(fields, error)``; ``fields`` only holds keys present in
    ``data`` when ``partial`` is set.
    """
    fields = {}

    if not partial or 'shop_name' in data:
        shop_name = (data.get('shop_name') or '').strip()
        if not shop_name or len(shop_name) > 120:
            return None, 'Shop name is required (max 120 characters)'
        fields['shop_name'] = shop_name

    if not partial or 'slug' in data:
        slug = (data.get('slug') or '').strip().lower()
        if not slug or len(slug) > 140 or not SLUG_RE.match(slug):
            return None, (
                'Slug is required and may only contain lowercase letters, '
                'digits and hyphens'
            )
        fields['slug'] = slug

    if 'description' in data:
        fields['description'] = (data.get('description') or '').strip() or None

    if 'contact_email' in data:
        contact_email = (data.get('contact_email') or '').strip() or None
        if contact_email and not EMAIL_RE.match(contact_email):
            return None, 'Contact email is invalid'
        fields['contact_email'] = contact_email

    if 'contact_phone' in data:
        contact_phone = (data.get('contact_phone') or '').strip() or None
        if contact_phone and len(contact_phone) > 32:
            return None, 'Contact phone is too long'
        fields['contact_phone'] = contact_phone

    return fields, None


def _slug_taken(slug, exclude_id=None):
    query = Seller.query.filter(Seller.slug == slug)
    if exclude_id is not None:
        query = query.filter(Seller.id != exclude_id)
    return query.first() is not None


IMAGE_COLUMNS = ('logo_url', 'banner_url', 'id_image_path')


def _store_images(seller_user_id, fields, saved):
    """Save logo/banner uploads into ``fields``.

    Every stored url is appended to ``saved`` so the caller can remove
    them again when a later upload raises UploadError.
    """
    for form_key, column in (('logo', 'logo_url'), ('banner', 'banner_url')):
        f = request.files.get(form_key)
        if not f or not f.filename:
            continue
        fields[column] = save_upload(
            f, f'sellers/{seller_user_id}', f'{form_key}_')
        saved.append(fields[column])


def _replaced_images(seller, fields):
    return [getattr(seller, column) for column in IMAGE_COLUMNS
            if column in fields and getattr(seller, column)]


def _discard(urls):
    for url in urls:
        remove_upload(url)


@bp.route('/api/sellers', methods=['POST'])
@role_required('CUSTOMER')
def apply():
    """Submit (or resubmit after rejection) a seller application."""
    existing = current_user.seller
    if existing and (
        existing.verification_status != SellerVerificationStatus.REJECTED
    ):
        return jsonify({
            'error': (
                'You already have a seller profile with status: '
                f'{existing.verification_status.value}.'
            )
        }), 400

    data = request_data()
    fields, error = _clean_profile_fields(data)
    if error:
        return jsonify({'error': error}), 400

    if _slug_taken(fields['slug'], existing.id if existing else None):
        return jsonify({'error': 'Slug is already taken'}), 400

    id_image = request.files.get('id_image')
    if not id_image or not id_image.filename:
        return jsonify({'error': 'A valid ID image is required'}), 400

    saved = []
    try:
        _store_images(current_user.id, fields, saved)
        fields['id_image_path'] = save_upload(
            id_image, f'sellers/{current_user.id}/id')
    except UploadError as e:
        _discard(saved)
        return jsonify({'error': str(e)}), 400

    replaced = []
    if existing:
        replaced = _replaced_images(existing, fields)
        seller = existing
        for key, value in fields.items():
            setattr(seller, key, value)
        seller.deleted_at = None
        action = 'SELLER_APPLICATION_RESUBMIT'
    else:
        seller = Seller(user_id=current_user.id, **fields)
        db.session.add(seller)
        action = 'SELLER_APPLICATION_SUBMIT'

    seller.verification_status = SellerVerificationStatus.UNVERIFIED
    seller.is_active = True
    db.session.commit()
    _discard(replaced)

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action=action,
        target_type='SELLER',
        target_id=seller.id,
        payload={'shop_name': seller.shop_name, 'slug': seller.slug}
    )

    return jsonify({
        'ok': True,
        'message': 'Seller application submitted.',
        'seller': seller_to_dict(seller),
    }), 201


@bp.route('/api/sellers/me', methods=['GET'])
@seller_required()
def me(seller):
    return jsonify({'ok': True, 'seller': seller_to_dict(
        seller, with_counts=True)})


@bp.route('/api/sellers/me', methods=['PUT', 'PATCH', 'POST'])
@seller_required()
def update_me(seller):
    data = request_data()
    fields, error = _clean_profile_fields(data, partial=True)
    if error:
        return jsonify({'error': error}), 400

    if 'slug' in fields and _slug_taken(fields['slug'], seller.id):
        return jsonify({'error': 'Slug is already taken'}), 400

    saved = []
    try:
        _store_images(current_user.id, fields, saved)
    except UploadError as e:
        _discard(saved)
        return jsonify({'error': str(e)}), 400

    replaced = _replaced_images(seller, fields)
    for key, value in fields.items():
        setattr(seller, key, value)
    db.session.commit()
    _discard(replaced)

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='SELLER_UPDATE',
        target_type='SELLER',
        target_id=seller.id,
        payload={'fields': sorted(fields)}
    )

    return jsonify({
        'ok': True,
        'message': 'Seller profile updated successfully.',
        'seller': seller_to_dict(seller),
    })


@bp.route('/api/sellers/<int:seller_id>', methods=['GET'])
def show(seller_id):
    seller = Seller.query.filter(
        Seller.id == seller_id,
        Seller.deleted_at.is_(None),
    ).first_or_404(description='Seller not found.')
    return jsonify({'ok': True, 'seller': seller_to_dict(
        seller, with_counts=True)})
