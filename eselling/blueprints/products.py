from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from eselling.extensions import db
from eselling.middleware import seller_required
from eselling.models import Product, Seller
from eselling.serializers import product_to_dict, pagination_to_dict
from eselling.services.audit_service import log_audit
from eselling.services.catalog_service import (
    storefront_query,
    seller_inventory_query,
)
from eselling.utils import (
    request_data,
    json_field,
    parse_decimal,
    parse_int,
    paginate_query,
    page_args,
    object_permission_required,
    current_seller_id,
    save_upload,
    UploadError,
)
from datetime import datetime
import logging
import re

logger = logging.getLogger(__name__)

bp = Blueprint('products', __name__)

SLUG_RE = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')

# column -> max length
TEXT_FIELDS = {
    'category': 120,
    'sku': 80,
    'weight': 50,
}


def _public(response):
    response.cache_control.public = True
    response.cache_control.max_age = current_app.config.get(
        'PRODUCT_CACHE_MAX_AGE', 300)
    return response


def _clean_product_fields(data, partial=False, product_id=None):
    """Validate product attributes from a JSON or multipart body.

    Returns ``(fields, error)``.
    """
    fields = {}

    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name or len(name) > 160:
            return None, 'Product name is required (max 160 characters)'
        fields['name'] = name

    if not partial or 'slug' in data:
        slug = (data.get('slug') or '').strip().lower()
        if not slug or len(slug) > 180 or not SLUG_RE.match(slug):
            return None, (
                'Slug is required and may only contain lowercase letters, '
                'digits and hyphens'
            )
        taken = Product.query.filter(Product.slug == slug)
        if product_id is not None:
            taken = taken.filter(Product.id != product_id)
        if taken.first():
            return None, 'Slug is already taken'
        fields['slug'] = slug

    if not partial or 'price' in data:
        price = parse_decimal(data.get('price'))
        if price is None or price < 0:
            return None, 'Price must be a number of at least 0'
        fields['price'] = price

    if not partial or 'stock' in data:
        stock = parse_int(data.get('stock'))
        if stock is None or stock < 0:
            return None, 'Stock must be a whole number of at least 0'
        fields['stock'] = stock

    if 'description' in data:
        fields['description'] = (data.get('description') or '').strip() or None

    for key, max_len in TEXT_FIELDS.items():
        if key not in data:
            continue
        value = (data.get(key) or '').strip() or None
        if value and len(value) > max_len:
            return None, f'{key} is too long (max {max_len} characters)'
        fields[key] = value

    if 'options' in data:
        options = json_field(data, 'options', [])
        if options is not None and not isinstance(options, list):
            return None, 'Options must be a list'
        fields['options'] = options or []

    return fields, None


def _store_product_images(fields, product_id=None):
    prefix = f'{product_id}_' if product_id else ''
    main_image = request.files.get('main_image')
    if main_image and main_image.filename:
        fields['main_image_url'] = save_upload(
            main_image, 'products', prefix)

    urls = [
        save_upload(f, 'products', prefix)
        for f in request.files.getlist('images')
        if f and f.filename
    ]
    if urls:
        fields['images'] = urls


@bp.route('/api/products', methods=['POST'])
@seller_required(verified=True)
def create_product(seller):
    data = request_data()
    fields, error = _clean_product_fields(data)
    if error:
        return jsonify({'error': error}), 400

    try:
        _store_product_images(fields)
    except UploadError as e:
        return jsonify({'error': str(e)}), 400

    product = Product(seller_id=seller.id, is_active=True, **fields)
    db.session.add(product)
    seller.product_count = Seller.product_count + 1
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PRODUCT_CREATE',
        target_type='PRODUCT',
        target_id=product.id,
        payload={
            'name': product.name,
            'price': float(product.price),
            'stock': product.stock,
        },
    )

    return jsonify({
        'ok': True,
        'message': 'Product created.',
        'product': product_to_dict(product),
    }), 201


@bp.route('/api/products', methods=['GET'])
def product_list():
    page, per_page = page_args()
    query = storefront_query(
        query=request.args.get('q'),
        category=request.args.get('category'),
        sort_by=request.args.get('sort', 'newest'),
    )
    result = paginate_query(query, page=page, per_page=per_page)
    payload = pagination_to_dict(result, product_to_dict)
    payload['ok'] = True
    return _public(jsonify(payload))


@bp.route('/api/products/<int:product_id>', methods=['GET'])
def product_detail(product_id):
    product = Product.query.filter(
        Product.id == product_id,
        Product.deleted_at.is_(None),
    ).first_or_404(description='Product not found.')
    return _public(jsonify({
        'ok': True,
        'product': product_to_dict(product),
    }))


@bp.route('/api/sellers/<int:seller_id>/products', methods=['GET'])
def seller_products(seller_id):
    Seller.query.filter(
        Seller.id == seller_id,
        Seller.deleted_at.is_(None),
    ).first_or_404(description='Seller not found.')

    page, per_page = page_args()
    query = storefront_query(
        seller_id=seller_id,
        query=request.args.get('q'),
        category=request.args.get('category'),
        sort_by=request.args.get('sort', 'newest'),
    )
    result = paginate_query(query, page=page, per_page=per_page)
    payload = pagination_to_dict(result, product_to_dict)
    payload['ok'] = True
    return _public(jsonify(payload))


@bp.route('/api/sellers/me/products', methods=['GET'])
@seller_required()
def my_products(seller):
    """Seller center inventory: inactive products included."""
    page, per_page = page_args()
    include_deleted = request.args.get('include_deleted') in ('1', 'true')
    query = seller_inventory_query(seller.id, include_deleted=include_deleted)
    result = paginate_query(query, page=page, per_page=per_page)
    payload = pagination_to_dict(
        result, lambda p: product_to_dict(p, with_seller=False))
    payload['ok'] = True
    return jsonify(payload)


@bp.route('/api/products/<int:product_id>', methods=['PUT', 'PATCH'])
@object_permission_required(
    Product,
    'product_id',
    'seller_id',
    principal_owner_id=current_seller_id)
def update_product(product_id, resource):
    product = resource
    if product.is_deleted:
        return jsonify({'error': 'Restore the product before editing'}), 400

    data = request_data()
    fields, error = _clean_product_fields(
        data, partial=True, product_id=product.id)
    if error:
        return jsonify({'error': error}), 400

    try:
        _store_product_images(fields, product.id)
    except UploadError as e:
        return jsonify({'error': str(e)}), 400

    for key, value in fields.items():
        setattr(product, key, value)
    product.updated_at = datetime.utcnow()
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PRODUCT_UPDATE',
        target_type='PRODUCT',
        target_id=product.id,
        payload={'fields': sorted(fields)}
    )

    return jsonify({
        'ok': True,
        'message': 'Product updated successfully.',
        'product': product_to_dict(product),
    })


@bp.route('/api/products/<int:product_id>', methods=['DELETE'])
@object_permission_required(
    Product,
    'product_id',
    'seller_id',
    principal_owner_id=current_seller_id)
def delete_product(product_id, resource):
    product = resource
    if product.is_deleted:
        return jsonify({'error': 'Product is already removed'}), 400

    product.deleted_at = datetime.utcnow()
    product.is_active = False
    product.seller.product_count = Seller.product_count - 1
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PRODUCT_DELETE',
        target_type='PRODUCT',
        target_id=product.id
    )

    return jsonify({
        'ok': True,
        'message': 'Product removed from store successfully.',
    })


@bp.route('/api/products/<int:product_id>/restore', methods=['POST'])
@object_permission_required(
    Product,
    'product_id',
    'seller_id',
    principal_owner_id=current_seller_id)
def restore_product(product_id, resource):
    product = resource
    if not product.is_deleted:
        return jsonify({'error': 'Product is not removed'}), 400

    product.deleted_at = None
    product.is_active = True
    product.seller.product_count = Seller.product_count + 1
    db.session.commit()

    log_audit(
        actor_id=current_user.id,
        actor_role=current_user.role,
        action='PRODUCT_RESTORE',
        target_type='PRODUCT',
        target_id=product.id
    )

    return jsonify({
        'ok': True,
        'message': 'Product restored successfully.',
        'product': product_to_dict(product),
    })
