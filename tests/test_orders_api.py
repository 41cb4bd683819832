import itertools
import re
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from eselling.extensions import db
from eselling.models import (
    CartItem,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    Seller,
    User,
)
from eselling.services import order_number_service
from eselling.services.order_service import place_orders


def _product(app, product_id):
    with app.app_context():
        product = db.session.get(Product, product_id)
        return product.stock, product.sold_count


def _order_count(app, seller_id):
    with app.app_context():
        return db.session.get(Seller, seller_id).order_count


def test_checkout_splits_cart_by_seller(app, factory, marketplace):
    m = marketplace
    factory.cart_item(m['customer_id'], m['product_a'], quantity=2)
    factory.cart_item(m['customer_id'], m['product_b'], quantity=3)

    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'cop',
        'notes': 'Pick up after 5pm',
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['total_orders'] == 2
    assert 'split into multiple orders' in body['message']

    by_seller = {o['seller_id']: o for o in body['orders']}
    assert set(by_seller) == {m['seller_a'], m['seller_b']}

    order_a = by_seller[m['seller_a']]
    assert order_a['subtotal'] == 300.0
    assert order_a['total_amount'] == order_a['subtotal']
    assert order_a['status'] == 'confirmed'
    assert order_a['payment_status'] == 'pending'
    assert order_a['notes'] == 'Pick up after 5pm'
    assert re.match(r'^ORD-\d{8}-[A-Z0-9]{6}$', order_a['order_number'])
    assert order_a['items'][0]['quantity'] == 2
    assert order_a['items'][0]['total_price'] == 300.0

    assert by_seller[m['seller_b']]['subtotal'] == 61.5

    assert _product(app, m['product_a']) == (3, 2)
    assert _product(app, m['product_b']) == (5, 3)
    assert _order_count(app, m['seller_a']) == 1
    assert _order_count(app, m['seller_b']) == 1

    with app.app_context():
        assert CartItem.query.filter_by(
            user_id=m['customer_id']).count() == 0


def test_checkout_with_explicit_items_keeps_other_cart_rows(
        app, factory, marketplace):
    m = marketplace
    factory.cart_item(m['customer_id'], m['product_a'], quantity=1)
    factory.cart_item(m['customer_id'], m['product_b'], quantity=1)

    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'gcash',
        'items': [{'product_id': m['product_b'], 'quantity': 2}],
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['total_orders'] == 1
    assert body['orders'][0]['status'] == 'pending'

    with app.app_context():
        remaining = [
            i.product_id for i in CartItem.query.filter_by(
                user_id=m['customer_id']).all()
        ]
    assert remaining == [m['product_a']]


def test_checkout_rejects_insufficient_stock(app, marketplace):
    m = marketplace
    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'cop',
        'items': [
            {'product_id': m['product_a'], 'quantity': 1},
            {'product_id': m['product_b'], 'quantity': 99},
        ],
    })
    assert resp.status_code == 400
    assert 'Insufficient stock' in resp.get_json()['error']

    # Nothing was reserved for the valid line either
    assert _product(app, m['product_a']) == (5, 0)
    with app.app_context():
        assert Order.query.count() == 0


def test_failed_second_order_rolls_back_the_first(
        app, factory, marketplace, monkeypatch):
    m = marketplace
    factory.cart_item(m['customer_id'], m['product_a'], quantity=1)
    factory.cart_item(m['customer_id'], m['product_b'], quantity=2)
    today = datetime.utcnow().strftime('%Y%m%d')
    factory.order(m['customer_id'], m['seller_b'],
                  order_number=f'ORD-{today}-ZZZZZZ')

    # Seller A gets a fresh number; every draw for seller B collides
    suffixes = itertools.chain(['AAAAAA'], itertools.repeat('ZZZZZZ'))
    monkeypatch.setattr(order_number_service, 'random_suffix',
                        lambda *a, **kw: next(suffixes))

    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'cop',
        'items': [
            {'product_id': m['product_a'], 'quantity': 1},
            {'product_id': m['product_b'], 'quantity': 2},
        ],
    })
    assert resp.status_code == 503

    with app.app_context():
        numbers = [o.order_number for o in Order.query.all()]
        assert numbers == [f'ORD-{today}-ZZZZZZ']
        assert CartItem.query.filter_by(
            user_id=m['customer_id']).count() == 2
    assert _product(app, m['product_a']) == (5, 0)
    assert _product(app, m['product_b']) == (8, 0)
    assert _order_count(app, m['seller_a']) == 0


def test_stock_race_rolls_back_placed_orders(app, marketplace):
    m = marketplace
    with app.app_context():
        user = db.session.get(User, m['customer_id'])
        product = db.session.get(Product, m['product_a'])
        # Lines checked earlier; stock has since dropped below the request
        with pytest.raises(IntegrityError):
            place_orders(user, [(product, 6)], PaymentMethod.COP)
        db.session.rollback()

        assert Order.query.count() == 0
        assert db.session.get(Product, m['product_a']).stock == 5


def test_checkout_validation(marketplace):
    m = marketplace
    resp = m['customer'].post('/api/orders', json={'payment_method': 'cop'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Cart is empty'

    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'bitcoin',
        'items': [{'product_id': m['product_a'], 'quantity': 1}],
    })
    assert resp.status_code == 400

    resp = m['customer'].post('/api/orders', json={
        'payment_method': 'cop',
        'items': [{'product_id': 999, 'quantity': 1}],
    })
    assert resp.status_code == 400


def test_checkout_requires_login(client, marketplace):
    resp = client.post('/api/orders', json={'payment_method': 'cop'})
    assert resp.status_code == 401


def test_checkout_multipart_with_receipt(app, marketplace, image):
    m = marketplace
    resp = m['customer'].post(
        '/api/orders',
        data={
            'payment_method': 'gcash',
            'items': '[{"product_id": %d, "quantity": 1}]' % m['product_a'],
            'payment_receipt': image('receipt.png'),
        },
        content_type='multipart/form-data',
    )
    assert resp.status_code == 201
    order = resp.get_json()['orders'][0]
    assert order['payment_receipt_url'].startswith(
        '/static/uploads/orders/receipts/')


def test_order_list_and_detail_are_scoped_to_buyer(
        app, factory, login, marketplace):
    m = marketplace
    mine = factory.order(m['customer_id'], m['seller_a'], m['product_a'])
    stranger = factory.user(email='stranger@example.com')
    theirs = factory.order(stranger, m['seller_b'], m['product_b'])

    resp = m['customer'].get('/api/orders')
    assert resp.status_code == 200
    assert [o['id'] for o in resp.get_json()['items']] == [mine]

    assert m['customer'].get(f'/api/orders/{mine}').status_code == 200
    assert m['customer'].get(f'/api/orders/{theirs}').status_code == 404

    # The seller of the order can read it too
    resp = m['seller_a_client'].get(f'/api/orders/{mine}')
    assert resp.status_code == 200
    assert resp.get_json()['order']['customer']['id'] == m['customer_id']


def test_order_list_status_filter(factory, marketplace):
    m = marketplace
    factory.order(m['customer_id'], m['seller_a'])
    confirmed = factory.order(
        m['customer_id'], m['seller_a'], status=OrderStatus.CONFIRMED)

    resp = m['customer'].get('/api/orders?status=confirmed')
    assert [o['id'] for o in resp.get_json()['items']] == [confirmed]

    resp = m['customer'].get('/api/orders?status=teleported')
    assert resp.status_code == 400


def test_cancel_restores_stock(app, factory, marketplace):
    m = marketplace
    order_id = factory.order(
        m['customer_id'], m['seller_a'], m['product_a'], quantity=2,
        status=OrderStatus.CONFIRMED)
    assert _product(app, m['product_a']) == (3, 2)

    resp = m['customer'].post(f'/api/orders/{order_id}/cancel')
    assert resp.status_code == 200
    assert resp.get_json()['order']['status'] == 'cancelled'
    assert _product(app, m['product_a']) == (5, 0)

    # Already cancelled
    resp = m['customer'].post(f'/api/orders/{order_id}/cancel')
    assert resp.status_code == 400


def test_cancel_not_allowed_after_pickup(app, factory, marketplace):
    m = marketplace
    order_id = factory.order(
        m['customer_id'], m['seller_a'], m['product_a'],
        status=OrderStatus.PICKED_UP)

    resp = m['customer'].post(f'/api/orders/{order_id}/cancel')
    assert resp.status_code == 400
    assert _product(app, m['product_a']) == (4, 1)


def test_confirm_delivery_only_once(app, factory, marketplace):
    m = marketplace
    order_id = factory.order(
        m['customer_id'], m['seller_a'], m['product_a'],
        status=OrderStatus.PICKED_UP)

    resp = m['customer'].post(f'/api/orders/{order_id}/confirm-delivery')
    assert resp.status_code == 200
    order = resp.get_json()['order']
    assert order['delivery_confirmed_by_customer'] is True
    assert order['customer_delivery_confirmed_at'] is not None

    resp = m['customer'].post(f'/api/orders/{order_id}/confirm-delivery')
    assert resp.status_code == 400

    with app.app_context():
        assert db.session.get(Order, order_id).delivery_confirmed_by_customer


def test_seller_updates_own_order_status(app, factory, marketplace):
    m = marketplace
    order_id = factory.order(
        m['customer_id'], m['seller_a'], m['product_a'],
        status=OrderStatus.CONFIRMED)

    resp = m['seller_a_client'].patch(
        f'/api/orders/{order_id}/status', json={'status': 'ready_for_pickup'})
    assert resp.status_code == 200
    assert resp.get_json()['order']['status'] == 'ready_for_pickup'

    # Another seller may not touch it
    resp = m['seller_b_client'].patch(
        f'/api/orders/{order_id}/status', json={'status': 'picked_up'})
    assert resp.status_code == 403

    # Sellers cannot mark an order refunded directly
    resp = m['seller_a_client'].patch(
        f'/api/orders/{order_id}/status', json={'status': 'refunded'})
    assert resp.status_code == 403


def test_admin_updates_status_and_payment(app, factory, login, marketplace):
    m = marketplace
    factory.admin()
    admin = login('admin@eselling.com', 'admin123', admin=True)
    order_id = factory.order(m['customer_id'], m['seller_a'], m['product_a'])

    resp = admin.patch(f'/api/orders/{order_id}/status', json={
        'status': 'processing',
        'admin_notes': 'Checked by ops',
    })
    assert resp.status_code == 200
    assert resp.get_json()['order']['admin_notes'] == 'Checked by ops'

    resp = admin.patch(
        f'/api/orders/{order_id}/payment-status',
        json={'payment_status': 'paid'})
    assert resp.status_code == 200
    paid_at = resp.get_json()['order']['paid_at']
    assert paid_at is not None

    # paid_at is stamped only on the first transition to paid
    admin.patch(
        f'/api/orders/{order_id}/payment-status',
        json={'payment_status': 'pending'})
    resp = admin.patch(
        f'/api/orders/{order_id}/payment-status',
        json={'payment_status': 'paid'})
    assert resp.get_json()['order']['paid_at'] == paid_at

    # Customers cannot change payment status
    resp = m['customer'].patch(
        f'/api/orders/{order_id}/payment-status',
        json={'payment_status': 'refunded'})
    assert resp.status_code == 403


def test_admin_cancel_releases_stock_once(app, factory, login, marketplace):
    m = marketplace
    factory.admin()
    admin = login('admin@eselling.com', 'admin123', admin=True)
    order_id = factory.order(
        m['customer_id'], m['seller_a'], m['product_a'], quantity=2)

    resp = admin.patch(
        f'/api/orders/{order_id}/status', json={'status': 'cancelled'})
    assert resp.status_code == 200
    assert _product(app, m['product_a']) == (5, 0)

    resp = admin.patch(
        f'/api/orders/{order_id}/status', json={'status': 'confirmed'})
    assert resp.status_code == 400
    assert _product(app, m['product_a']) == (5, 0)


def test_seller_orders_and_stats(app, factory, marketplace):
    m = marketplace
    factory.order(
        m['customer_id'], m['seller_a'], m['product_a'],
        payment_status=PaymentStatus.PAID, status=OrderStatus.PICKED_UP)
    factory.order(m['customer_id'], m['seller_a'], m['product_a'])
    factory.order(m['customer_id'], m['seller_b'], m['product_b'])

    resp = m['seller_a_client'].get('/api/seller/orders')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['total'] == 2
    assert all(o['seller_id'] == m['seller_a'] for o in body['items'])

    resp = m['seller_a_client'].get('/api/seller/orders/stats')
    stats = resp.get_json()['stats']
    assert stats['total_orders'] == 2
    assert stats['pending_orders'] == 1
    assert stats['picked_up_orders'] == 1
    assert stats['total_revenue'] == 150.0
    assert stats['pending_revenue'] == 150.0


def test_seller_endpoints_need_a_seller_profile(marketplace):
    resp = marketplace['customer'].get('/api/seller/orders')
    assert resp.status_code == 404
