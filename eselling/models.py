from eselling.extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlalchemy.orm import joinedload
import enum
import json


class SellerVerificationStatus(enum.Enum):
    UNVERIFIED = 'unverified'
    VERIFIED = 'verified'
    REJECTED = 'rejected'


class OrderStatus(enum.Enum):
    PENDING = 'pending'
    PAYMENT_VERIFIED = 'payment_verified'
    CONFIRMED = 'confirmed'
    PROCESSING = 'processing'
    READY_FOR_PICKUP = 'ready_for_pickup'
    PICKED_UP = 'picked_up'
    CANCELLED = 'cancelled'
    # Payment rejected by admin
    REJECTED = 'rejected'
    # Refund approved by seller
    REFUNDED = 'refunded'


class PaymentStatus(enum.Enum):
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class PaymentMethod(enum.Enum):
    # Cash on pickup
    COP = 'cop'
    GCASH = 'gcash'
    PAYMAYA = 'paymaya'
    BANK_TRANSFER = 'bank_transfer'


class RefundStatus(enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


def coerce_enum(enum_class, value):
    """Accept an enum member, its value ('pending') or its name ('PENDING').

    Raises ValueError for anything else.
    """
    if isinstance(value, enum_class):
        return value
    raw = (value or '').strip() if isinstance(value, str) else value
    try:
        return enum_class(raw)
    except ValueError:
        if isinstance(raw, str) and raw.upper() in enum_class.__members__:
            return enum_class[raw.upper()]
        raise


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    contact_number = db.Column(db.String(255), nullable=True)
    profile_picture_url = db.Column(db.String(2048), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    seller = db.relationship(
        'Seller',
        back_populates='user',
        uselist=False,
        cascade='all, delete-orphan')
    cart_items = db.relationship(
        'CartItem',
        backref='user',
        lazy='dynamic',
        cascade='all, delete-orphan')
    orders = db.relationship(
        'Order',
        back_populates='user',
        lazy='dynamic',
        cascade='all, delete-orphan')
    refunds = db.relationship(
        'Refund',
        back_populates='user',
        lazy='dynamic',
        cascade='all, delete-orphan')

    role = 'CUSTOMER'

    def get_id(self):
        return f'user:{self.id}'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def split_name(self):
        parts = (self.name or '').split()
        first = parts[0] if parts else ''
        last = ' '.join(parts[1:])
        return first, last

    def __repr__(self):
        return f'<User {self.email}>'


class Admin(UserMixin, db.Model):
    __tablename__ = 'admin'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    # Where customers send GCash payments; sellers are paid out from here.
    gcash_qr_url = db.Column(db.String(2048), nullable=True)
    gcash_number = db.Column(db.String(20), nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    role = 'ADMIN'

    def get_id(self):
        return f'admin:{self.id}'

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<Admin {self.email}>'


class Seller(db.Model):
    __tablename__ = 'seller'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        unique=True,
        nullable=False)
    shop_name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    logo_url = db.Column(db.String(255), nullable=True)
    banner_url = db.Column(db.String(255), nullable=True)
    id_image_path = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)
    verification_status = db.Column(
        db.Enum(SellerVerificationStatus),
        default=SellerVerificationStatus.UNVERIFIED,
        nullable=False,
        index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Denormalized; kept in step by product/order writes
    order_count = db.Column(db.Integer, default=0, nullable=False)
    product_count = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    # Soft delete
    deleted_at = db.Column(db.DateTime, nullable=True)

    # Relationships
    user = db.relationship('User', back_populates='seller')
    products = db.relationship(
        'Product',
        back_populates='seller',
        lazy='dynamic',
        cascade='all, delete-orphan')
    orders = db.relationship(
        'Order',
        back_populates='seller',
        lazy='dynamic',
        cascade='all, delete-orphan')

    @property
    def is_verified(self):
        return self.verification_status == SellerVerificationStatus.VERIFIED

    def __repr__(self):
        return f'<Seller {self.shop_name}>'


class Product(db.Model):
    __tablename__ = 'product'

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'seller.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    name = db.Column(db.String(160), nullable=False, index=True)
    slug = db.Column(db.String(180), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    sku = db.Column(db.String(80), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    sold_count = db.Column(db.Integer, nullable=False, default=0)
    main_image_url = db.Column(db.String(255), nullable=True)
    # Additional image urls
    images = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.String(50), nullable=True)
    # e.g. colors/sizes
    options = db.Column(db.JSON, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    # Soft delete
    deleted_at = db.Column(db.DateTime, nullable=True)

    seller = db.relationship('Seller', back_populates='products')
    order_items = db.relationship(
        'OrderItem',
        back_populates='product',
        lazy='dynamic',
        passive_deletes=True)

    __table_args__ = (
        CheckConstraint('stock >= 0', name='check_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='check_product_price_non_negative'),
    )

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def __repr__(self):
        return f'<Product {self.name}>'


class CartItem(db.Model):
    __tablename__ = 'carts'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'product.id',
            ondelete='CASCADE'),
        nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    product = db.relationship('Product')

    __table_args__ = (
        UniqueConstraint('user_id', 'product_id', name='uq_cart_user_product'),
        CheckConstraint('quantity > 0', name='check_cart_quantity_positive'),
    )

    def __repr__(self):
        return (
            f"<CartItem user={self.user_id} product={self.product_id} "
            f"qty={self.quantity}>"
        )


class OrderQuery(db.Query):

    def by_status(self, status):
        return self.filter(Order.status == coerce_enum(OrderStatus, status))

    def by_payment_status(self, payment_status):
        return self.filter(
            Order.payment_status == coerce_enum(PaymentStatus, payment_status))

    def by_seller(self, seller_id):
        return self.filter(Order.seller_id == seller_id)


class Order(db.Model):
    __tablename__ = 'orders'
    query_class = OrderQuery

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'seller.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    order_number = db.Column(db.String(50), unique=True, nullable=False)
    status = db.Column(
        db.Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False)
    # Pickup-only: no tax or shipping, total equals subtotal
    subtotal = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(
        db.Enum(PaymentMethod),
        default=PaymentMethod.COP,
        nullable=False)
    payment_status = db.Column(
        db.Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    payment_receipt_url = db.Column(db.String(2048), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    delivery_confirmed_by_customer = db.Column(
        db.Boolean, default=False, nullable=False)
    customer_delivery_confirmed_at = db.Column(db.DateTime, nullable=True)

    # Seller payout
    payment_distributed = db.Column(db.Boolean, default=False, nullable=False)
    payment_distributed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    # Relationships
    user = db.relationship('User', back_populates='orders')
    seller = db.relationship('Seller', back_populates='orders')
    items = db.relationship(
        'OrderItem',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderItem.id')
    refund = db.relationship(
        'Refund',
        back_populates='order',
        uselist=False,
        cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Order {self.order_number} status={self.status}>'


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'orders.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'product.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    quantity = db.Column(db.Integer, nullable=False)
    # Price at time of order
    price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    # Product snapshot
    product_name = db.Column(db.String(160), nullable=False)
    product_image = db.Column(db.String(512), nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    order = db.relationship('Order', back_populates='items')
    product = db.relationship('Product', back_populates='order_items')

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_quantity_positive'),
    )

    def __repr__(self):
        return (
            f"<OrderItem {self.id} order={self.order_id} "
            f"product={self.product_id}>"
        )


class RefundQuery(db.Query):

    def by_status(self, status):
        return self.filter(Refund.status == coerce_enum(RefundStatus, status))

    def for_user(self, user_id):
        return self.filter(Refund.user_id == user_id)

    def for_seller(self, seller_id):
        return self.filter(Refund.order.has(Order.seller_id == seller_id))

    def with_order(self):
        return self.options(
            joinedload(Refund.order).joinedload(Order.items)
            .joinedload(OrderItem.product),
            joinedload(Refund.order).joinedload(Order.user),
        )


class Refund(db.Model):
    __tablename__ = 'refunds'
    query_class = RefundQuery

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'orders.id',
            ondelete='CASCADE'),
        unique=True,
        nullable=False)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(RefundStatus),
        default=RefundStatus.PENDING,
        nullable=False)
    seller_response = db.Column(db.Text, nullable=True)
    requested_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    responded_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    order = db.relationship('Order', back_populates='refund')
    user = db.relationship('User', back_populates='refunds')

    def __repr__(self):
        return f'<Refund {self.id} order={self.order_id} status={self.status}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    # users.id or admin.id depending on actor_role
    actor_id = db.Column(db.Integer, nullable=True)
    actor_role = db.Column(db.String(20), nullable=False)
    # e.g., ORDER_CREATE, REFUND_APPROVED, PAYMENT_DISTRIBUTED
    action = db.Column(db.String(100), nullable=False)
    # ORDER, REFUND, PRODUCT, SELLER, etc.
    target_type = db.Column(db.String(50), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    ip = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    # JSON format key field snapshot
    payload_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    def set_payload(self, data):
        self.payload_json = json.dumps(data, ensure_ascii=False, default=str)

    def get_payload(self):
        if self.payload_json:
            return json.loads(self.payload_json)
        return {}

    def __repr__(self):
        return f'<AuditLog {self.id} action={self.action}>'
