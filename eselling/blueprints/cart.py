from flask import Blueprint, jsonify
from flask_login import current_user
from eselling.extensions import db
from eselling.middleware import role_required
from eselling.models import CartItem, Product
from eselling.serializers import product_to_dict
from eselling.utils import request_data, parse_int
from sqlalchemy.orm import joinedload
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('cart', __name__)


def cart_item_to_dict(item):
    product = item.product
    return {
        'id': item.id,
        'product_id': item.product_id,
        'quantity': item.quantity,
        'line_total': float(product.price) * item.quantity if product else 0,
        'product': product_to_dict(product) if product else None,
    }


def _own_item_or_404(item_id):
    return CartItem.query.filter_by(
        id=item_id,
        user_id=current_user.id,
    ).first_or_404(description='Cart item not found.')


@bp.route('/api/cart', methods=['GET'])
@role_required('CUSTOMER')
def view_cart():
    items = CartItem.query.options(
        joinedload(CartItem.product).joinedload(Product.seller)
    ).filter_by(
        user_id=current_user.id
    ).order_by(CartItem.created_at.desc(), CartItem.id.desc()).all()

    payload = [cart_item_to_dict(i) for i in items]
    return jsonify({
        'ok': True,
        'items': payload,
        'count': len(payload),
        'subtotal': round(sum(i['line_total'] for i in payload), 2),
    })


@bp.route('/api/cart', methods=['POST'])
@role_required('CUSTOMER')
def add_to_cart():
    data = request_data()
    product_id = parse_int(data.get('product_id'))
    quantity = parse_int(data.get('quantity', 1))

    if product_id is None:
        return jsonify({'error': 'product_id is required'}), 400
    if quantity is None or quantity < 1:
        return jsonify({'error': 'Quantity must be at least 1'}), 400

    product = db.session.get(Product, product_id)
    if not product or not product.is_active or product.is_deleted:
        return jsonify({'error': 'Product not found or inactive.'}), 404

    if product.stock < quantity:
        return jsonify({
            'error': f'Insufficient stock. Available: {product.stock}'
        }), 400

    item = CartItem.query.filter_by(
        user_id=current_user.id,
        product_id=product.id,
    ).first()

    if item:
        new_quantity = item.quantity + quantity
        if product.stock < new_quantity:
            return jsonify({
                'error': (
                    f'Cannot add more items. Available stock: '
                    f'{product.stock}, Current in cart: {item.quantity}'
                )
            }), 400
        item.quantity = new_quantity
        db.session.commit()
        return jsonify({
            'ok': True,
            'message': 'Cart updated successfully.',
            'item': cart_item_to_dict(item),
        })

    item = CartItem(
        user_id=current_user.id,
        product_id=product.id,
        quantity=quantity,
    )
    db.session.add(item)
    db.session.commit()

    logger.info(
        "User %s added product %s x%s to cart",
        current_user.id,
        product.id,
        quantity,
    )
    return jsonify({
        'ok': True,
        'message': 'Product added to cart successfully.',
        'item': cart_item_to_dict(item),
    }), 201


@bp.route('/api/cart/<int:item_id>', methods=['PATCH'])
@role_required('CUSTOMER')
def update_cart_item(item_id):
    item = _own_item_or_404(item_id)
    quantity = parse_int(request_data().get('quantity'))
    if quantity is None or quantity < 1:
        return jsonify({'error': 'Quantity must be at least 1'}), 400

    if item.product.stock < quantity:
        return jsonify({
            'error': f'Insufficient stock. Available: {item.product.stock}'
        }), 400

    item.quantity = quantity
    db.session.commit()
    return jsonify({
        'ok': True,
        'message': 'Cart item updated successfully.',
        'item': cart_item_to_dict(item),
    })


@bp.route('/api/cart/<int:item_id>', methods=['DELETE'])
@role_required('CUSTOMER')
def remove_cart_item(item_id):
    item = _own_item_or_404(item_id)
    db.session.delete(item)
    db.session.commit()
    return jsonify({'ok': True, 'message': 'Cart item removed successfully.'})


@bp.route('/api/cart/clear', methods=['POST'])
@role_required('CUSTOMER')
def clear_cart():
    removed = CartItem.query.filter_by(user_id=current_user.id).delete()
    db.session.commit()
    logger.info("User %s cleared %s cart item(s)", current_user.id, removed)
    return jsonify({'ok': True, 'message': 'Cart cleared successfully.'})
