"""JSON payloads shared by several blueprints."""
from eselling.services.seller_stats_service import (
    live_order_count,
    live_product_count,
)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else None


def user_to_dict(user):
    first_name, last_name = user.split_name()
    return {
        'id': user.id,
        'first_name': first_name,
        'last_name': last_name,
        'email': user.email,
        'contact_number': user.contact_number,
        'profile_picture_url': user.profile_picture_url,
        'user_type': 'user',
    }


def admin_to_dict(admin):
    return {
        'id': admin.id,
        'email': admin.email,
        'user_type': 'admin',
    }


def seller_to_dict(seller, with_counts=False):
    payload = {
        'id': seller.id,
        'user_id': seller.user_id,
        'shop_name': seller.shop_name,
        'slug': seller.slug,
        'description': seller.description,
        'logo_url': seller.logo_url,
        'banner_url': seller.banner_url,
        'contact_email': seller.contact_email,
        'contact_phone': seller.contact_phone,
        'verification_status': seller.verification_status.value,
        'is_active': seller.is_active,
        'order_count': seller.order_count,
        'product_count': seller.product_count,
        'created_at': _iso(seller.created_at),
    }
    if with_counts:
        payload['products_count'] = live_product_count(seller.id)
        payload['orders_count'] = live_order_count(seller.id)
    return payload


def product_to_dict(product, with_seller=True):
    payload = {
        'id': product.id,
        'seller_id': product.seller_id,
        'name': product.name,
        'slug': product.slug,
        'description': product.description,
        'category': product.category,
        'sku': product.sku,
        'price': _money(product.price),
        'stock': product.stock,
        'sold_count': product.sold_count,
        'main_image_url': product.main_image_url,
        'images': product.images or [],
        'weight': product.weight,
        'options': product.options or [],
        'is_active': product.is_active,
        'created_at': _iso(product.created_at),
        'deleted_at': _iso(product.deleted_at),
    }
    if with_seller and product.seller:
        payload['seller'] = {
            'id': product.seller.id,
            'shop_name': product.seller.shop_name,
            'slug': product.seller.slug,
        }
    return payload


def order_item_to_dict(item):
    return {
        'id': item.id,
        'product_id': item.product_id,
        'product_name': item.product_name,
        'product_image': item.product_image,
        'quantity': item.quantity,
        'price': _money(item.price),
        'total_price': _money(item.total_price),
    }


def order_to_dict(order, with_customer=False):
    payload = {
        'id': order.id,
        'order_number': order.order_number,
        'user_id': order.user_id,
        'seller_id': order.seller_id,
        'status': order.status.value,
        'subtotal': _money(order.subtotal),
        'total_amount': _money(order.total_amount),
        'payment_method': order.payment_method.value,
        'payment_status': order.payment_status.value,
        'paid_at': _iso(order.paid_at),
        'payment_receipt_url': order.payment_receipt_url,
        'notes': order.notes,
        'admin_notes': order.admin_notes,
        'delivery_confirmed_by_customer': (
            order.delivery_confirmed_by_customer
        ),
        'customer_delivery_confirmed_at': _iso(
            order.customer_delivery_confirmed_at),
        'payment_distributed': order.payment_distributed,
        'payment_distributed_at': _iso(order.payment_distributed_at),
        'created_at': _iso(order.created_at),
        'items': [order_item_to_dict(i) for i in order.items],
        'seller': {
            'id': order.seller.id,
            'shop_name': order.seller.shop_name,
        } if order.seller else None,
        'refund': refund_to_dict(order.refund, with_order=False)
        if order.refund else None,
    }
    if with_customer and order.user:
        payload['customer'] = {
            'id': order.user.id,
            'name': order.user.name,
            'email': order.user.email,
        }
    return payload


def refund_to_dict(refund, with_order=True):
    payload = {
        'id': refund.id,
        'order_id': refund.order_id,
        'user_id': refund.user_id,
        'reason': refund.reason,
        'status': refund.status.value,
        'seller_response': refund.seller_response,
        'requested_at': _iso(refund.requested_at),
        'responded_at': _iso(refund.responded_at),
    }
    if with_order and refund.order:
        payload['order'] = order_to_dict(refund.order, with_customer=True)
    return payload


def pagination_to_dict(result, serialize):
    return {
        'items': [serialize(x) for x in result['items']],
        'page': result['page'],
        'pages': result['pages'],
        'per_page': result['per_page'],
        'total': result['total'],
    }
