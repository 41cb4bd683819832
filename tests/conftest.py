"""
Pytest configuration and fixtures
"""
import io
import itertools
from decimal import Decimal

import pytest

from eselling import create_app
from eselling.config import Config
from eselling.extensions import db as _db
from eselling.models import (
    Admin,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    Refund,
    RefundStatus,
    Seller,
    SellerVerificationStatus,
    User,
)

DEFAULT_PASSWORD = 'password123'


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    ORDER_NUMBER_MAX_ATTEMPTS = 5
    ADMIN_SEED_PASSWORD = 'admin123'


@pytest.fixture
def app(tmp_path):
    """Application with an in-memory database and a throwaway static dir"""
    app = create_app(TestingConfig)
    app.static_folder = str(tmp_path / 'static')

    with app.app_context():
        _db.create_all()

    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Factory:
    """Creates rows in their own app context and hands back ids."""

    def __init__(self, app):
        self.app = app
        self._seq = itertools.count(1)

    def user(self, email=None, password=DEFAULT_PASSWORD,
             name='Test Customer', contact_number=None):
        n = next(self._seq)
        with self.app.app_context():
            user = User(
                name=name,
                email=email or f'user{n}@example.com',
                contact_number=contact_number,
            )
            user.set_password(password)
            _db.session.add(user)
            _db.session.commit()
            return user.id

    def admin(self, email='admin@eselling.com', password='admin123'):
        with self.app.app_context():
            admin = Admin(email=email)
            admin.set_password(password)
            _db.session.add(admin)
            _db.session.commit()
            return admin.id

    def seller(self, user_id=None,
               status=SellerVerificationStatus.VERIFIED,
               is_active=True, shop_name=None):
        n = next(self._seq)
        if user_id is None:
            user_id = self.user(email=f'seller{n}@example.com')
        with self.app.app_context():
            seller = Seller(
                user_id=user_id,
                shop_name=shop_name or f'Shop {n}',
                slug=f'shop-{n}',
                verification_status=status,
                is_active=is_active,
            )
            _db.session.add(seller)
            _db.session.commit()
            return seller.id

    def product(self, seller_id, price='100.00', stock=10, name=None,
                is_active=True, sold_count=0):
        n = next(self._seq)
        with self.app.app_context():
            product = Product(
                seller_id=seller_id,
                name=name or f'Product {n}',
                slug=f'product-{n}',
                price=Decimal(price),
                stock=stock,
                sold_count=sold_count,
                is_active=is_active,
            )
            _db.session.add(product)
            seller = _db.session.get(Seller, seller_id)
            seller.product_count += 1
            _db.session.commit()
            return product.id

    def cart_item(self, user_id, product_id, quantity=1):
        with self.app.app_context():
            item = CartItem(
                user_id=user_id,
                product_id=product_id,
                quantity=quantity,
            )
            _db.session.add(item)
            _db.session.commit()
            return item.id

    def order(self, user_id, seller_id, product_id=None, quantity=1,
              status=OrderStatus.PENDING,
              payment_status=PaymentStatus.PENDING,
              payment_method=PaymentMethod.GCASH,
              order_number=None):
        """An order as checkout would leave it, stock already taken."""
        n = next(self._seq)
        with self.app.app_context():
            total = Decimal('0')
            order = Order(
                user_id=user_id,
                seller_id=seller_id,
                order_number=order_number or f'ORD-20250101-T{n:05d}',
                status=status,
                payment_status=payment_status,
                payment_method=payment_method,
                subtotal=total,
                total_amount=total,
            )
            if product_id is not None:
                product = _db.session.get(Product, product_id)
                line_total = product.price * quantity
                order.items.append(OrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    price=product.price,
                    total_price=line_total,
                    product_name=product.name,
                ))
                product.stock -= quantity
                product.sold_count += quantity
                order.subtotal = line_total
                order.total_amount = line_total
            _db.session.add(order)
            seller = _db.session.get(Seller, seller_id)
            seller.order_count += 1
            _db.session.commit()
            return order.id

    def refund(self, order_id, status=RefundStatus.PENDING,
               reason='Item arrived damaged'):
        with self.app.app_context():
            order = _db.session.get(Order, order_id)
            refund = Refund(
                order_id=order.id,
                user_id=order.user_id,
                reason=reason,
                status=status,
            )
            _db.session.add(refund)
            _db.session.commit()
            return refund.id


@pytest.fixture
def factory(app):
    return Factory(app)


@pytest.fixture
def login(app):
    """Return a signed-in test client for a customer or the admin."""
    def _login(email, password=DEFAULT_PASSWORD, admin=False):
        client = app.test_client()
        url = '/api/admin/login' if admin else '/api/login'
        resp = client.post(url, json={'email': email, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login


@pytest.fixture
def marketplace(factory, login):
    """One customer plus two verified sellers with a product each."""
    customer_id = factory.user(email='buyer@example.com')
    seller_a_user = factory.user(email='alice@example.com')
    seller_b_user = factory.user(email='bob@example.com')
    seller_a = factory.seller(user_id=seller_a_user, shop_name='Alice Goods')
    seller_b = factory.seller(user_id=seller_b_user, shop_name='Bob Supply')
    product_a = factory.product(seller_a, price='150.00', stock=5)
    product_b = factory.product(seller_b, price='20.50', stock=8)
    return {
        'customer_id': customer_id,
        'customer': login('buyer@example.com'),
        'seller_a': seller_a,
        'seller_b': seller_b,
        'seller_a_client': login('alice@example.com'),
        'seller_b_client': login('bob@example.com'),
        'product_a': product_a,
        'product_b': product_b,
    }


@pytest.fixture
def image():
    """Build a fresh multipart file tuple for an upload field."""
    def _image(name='image.png'):
        return (io.BytesIO(b'\x89PNG\r\n\x1a\nfake-image-bytes'), name)
    return _image
