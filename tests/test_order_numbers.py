import re
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from eselling.extensions import db
from eselling.models import Order
from eselling.services import order_number_service
from eselling.services.order_number_service import (
    OrderNumberExhausted,
    generate_order_number,
    insert_with_order_number,
)

ORDER_NUMBER_RE = re.compile(r'^ORD-\d{8}-[A-Z0-9]{6}$')


def _new_order(user_id, seller_id):
    return Order(
        user_id=user_id,
        seller_id=seller_id,
        subtotal=Decimal('10.00'),
        total_amount=Decimal('10.00'),
    )


def _suffixes(monkeypatch, *values):
    it = iter(values)
    monkeypatch.setattr(
        order_number_service, 'random_suffix', lambda *a, **kw: next(it))


def test_order_number_format(app):
    with app.app_context():
        for _ in range(50):
            assert ORDER_NUMBER_RE.match(generate_order_number())


def test_order_number_uses_given_date():
    number = generate_order_number(today=datetime(2025, 10, 11))
    assert number.startswith('ORD-20251011-')
    assert ORDER_NUMBER_RE.match(number)


def test_insert_assigns_number(app, factory):
    user_id = factory.user()
    seller_id = factory.seller()

    with app.app_context():
        order = insert_with_order_number(_new_order(user_id, seller_id))
        db.session.commit()
        assert ORDER_NUMBER_RE.match(order.order_number)
        assert Order.query.count() == 1


def test_collision_resamples_suffix(app, factory, monkeypatch):
    user_id = factory.user()
    seller_id = factory.seller()
    today = datetime.utcnow().strftime('%Y%m%d')
    factory.order(user_id, seller_id, order_number=f'ORD-{today}-AAAAAA')

    _suffixes(monkeypatch, 'AAAAAA', 'AAAAAA', 'BBBBBB')

    with app.app_context():
        order = insert_with_order_number(_new_order(user_id, seller_id))
        db.session.commit()

        assert order.order_number == f'ORD-{today}-BBBBBB'
        numbers = {o.order_number for o in Order.query.all()}
        assert numbers == {f'ORD-{today}-AAAAAA', f'ORD-{today}-BBBBBB'}


def test_exhaustion_raises(app, factory, monkeypatch):
    user_id = factory.user()
    seller_id = factory.seller()
    today = datetime.utcnow().strftime('%Y%m%d')
    factory.order(user_id, seller_id, order_number=f'ORD-{today}-ZZZZZZ')

    monkeypatch.setattr(
        order_number_service, 'random_suffix', lambda *a, **kw: 'ZZZZZZ')

    with app.app_context():
        with pytest.raises(OrderNumberExhausted):
            insert_with_order_number(
                _new_order(user_id, seller_id), max_attempts=3)
        db.session.rollback()
        assert Order.query.count() == 1


def test_unrelated_integrity_error_is_not_retried(app, factory, monkeypatch):
    user_id = factory.user()
    calls = []

    def suffix(*a, **kw):
        calls.append(1)
        return 'CCCCCC'

    monkeypatch.setattr(order_number_service, 'random_suffix', suffix)

    with app.app_context():
        order = _new_order(user_id, None)
        with pytest.raises(IntegrityError):
            insert_with_order_number(order)
        db.session.rollback()

    assert len(calls) == 1
