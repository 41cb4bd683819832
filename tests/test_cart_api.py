from eselling.extensions import db
from eselling.models import CartItem


def test_cart_requires_login(client):
    assert client.get('/api/cart').status_code == 401


def test_add_and_merge(marketplace):
    m = marketplace
    cart = m['customer']

    resp = cart.post('/api/cart', json={
        'product_id': m['product_a'], 'quantity': 2})
    assert resp.status_code == 201
    item = resp.get_json()['item']
    assert item['quantity'] == 2
    assert item['line_total'] == 300.0

    resp = cart.post('/api/cart', json={
        'product_id': m['product_a'], 'quantity': 1})
    assert resp.status_code == 200
    assert resp.get_json()['item']['id'] == item['id']
    assert resp.get_json()['item']['quantity'] == 3

    cart.post('/api/cart', json={'product_id': m['product_b']})

    body = cart.get('/api/cart').get_json()
    assert body['count'] == 2
    assert body['subtotal'] == 470.5


def test_add_checks_stock(marketplace):
    m = marketplace
    cart = m['customer']

    resp = cart.post('/api/cart', json={
        'product_id': m['product_a'], 'quantity': 6})
    assert resp.status_code == 400

    cart.post('/api/cart', json={'product_id': m['product_a'], 'quantity': 4})
    resp = cart.post('/api/cart', json={
        'product_id': m['product_a'], 'quantity': 2})
    assert resp.status_code == 400
    assert 'Current in cart: 4' in resp.get_json()['error']


def test_add_validation(marketplace):
    cart = marketplace['customer']
    assert cart.post('/api/cart', json={}).status_code == 400
    assert cart.post('/api/cart', json={
        'product_id': marketplace['product_a'],
        'quantity': 0}).status_code == 400
    assert cart.post('/api/cart', json={
        'product_id': 4242}).status_code == 404


def test_update_quantity(factory, marketplace):
    m = marketplace
    item_id = factory.cart_item(m['customer_id'], m['product_b'])

    resp = m['customer'].patch(f'/api/cart/{item_id}', json={'quantity': 8})
    assert resp.status_code == 200
    assert resp.get_json()['item']['quantity'] == 8

    resp = m['customer'].patch(f'/api/cart/{item_id}', json={'quantity': 9})
    assert resp.status_code == 400


def test_items_are_private(app, factory, marketplace):
    m = marketplace
    item_id = factory.cart_item(m['customer_id'], m['product_b'])

    stranger = m['seller_a_client']
    assert stranger.patch(
        f'/api/cart/{item_id}', json={'quantity': 1}).status_code == 404
    assert stranger.delete(f'/api/cart/{item_id}').status_code == 404

    assert m['customer'].delete(f'/api/cart/{item_id}').status_code == 200
    with app.app_context():
        assert db.session.get(CartItem, item_id) is None


def test_clear(app, factory, marketplace):
    m = marketplace
    factory.cart_item(m['customer_id'], m['product_a'])
    factory.cart_item(m['customer_id'], m['product_b'])
    other = factory.cart_item(
        factory.user(email='someone@example.com'), m['product_a'])

    resp = m['customer'].post('/api/cart/clear')
    assert resp.status_code == 200

    with app.app_context():
        assert [i.id for i in CartItem.query.all()] == [other]


def test_admin_has_no_cart(factory, login):
    factory.admin()
    admin = login('admin@eselling.com', 'admin123', admin=True)
    assert admin.get('/api/cart').status_code == 403
