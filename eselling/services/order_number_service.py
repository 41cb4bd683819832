"""Order number allocation.

Numbers look like ``ORD-20251011-7K2QXA``. Uniqueness is enforced by the
``orders.order_number`` unique constraint rather than a lookup before the
insert: each candidate is flushed inside a savepoint and a collision only
rolls back that savepoint before a new suffix is drawn.
"""
from eselling.extensions import db
from eselling.models import Order
from flask import current_app
from sqlalchemy.exc import IntegrityError
from datetime import datetime
import logging
import secrets
import string

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = 'ORD'
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6


class OrderNumberExhausted(Exception):
    """No free order number was found within the configured attempts."""


def random_suffix(length=SUFFIX_LENGTH):
    return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def generate_order_number(today=None):
    today = today or datetime.utcnow()
    return f"{ORDER_NUMBER_PREFIX}-{today:%Y%m%d}-{random_suffix()}"


def _number_taken(order_number):
    return db.session.query(
        Order.query.filter_by(order_number=order_number).exists()
    ).scalar()


def insert_with_order_number(order: Order, max_attempts=None) -> Order:
    """Assign a fresh order number to ``order`` and flush it.

    The surrounding transaction is left open; the caller commits.
    """
    if max_attempts is None:
        max_attempts = current_app.config.get('ORDER_NUMBER_MAX_ATTEMPTS', 10)

    for attempt in range(1, max_attempts + 1):
        candidate = generate_order_number()
        order.order_number = candidate
        try:
            with db.session.begin_nested():
                db.session.add(order)
        except IntegrityError:
            if not _number_taken(candidate):
                raise
            logger.warning(
                "Order number collision on %s (attempt %s/%s)",
                candidate,
                attempt,
                max_attempts,
            )
            continue
        return order

    raise OrderNumberExhausted(
        f'Could not allocate an order number after {max_attempts} attempts'
    )
