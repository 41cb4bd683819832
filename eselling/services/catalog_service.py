from eselling.models import Product, Seller
from sqlalchemy import or_
import re
import logging

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    'newest': (Product.created_at.desc(), Product.id.desc()),
    'price_asc': (Product.price.asc(), Product.id.asc()),
    'price_desc': (Product.price.desc(), Product.id.desc()),
    'popularity': (Product.sold_count.desc(), Product.id.desc()),
}


def _sanitize_query(query):
    if not query:
        return None
    q = str(query).replace('\x00', '').strip()
    if not q:
        return None
    q = re.sub(r'[%_\\]', ' ', q)
    q = re.sub(r'\s+', ' ', q).strip()
    return q[:80] if len(q) > 80 else q


def storefront_query(seller_id=None, query=None, category=None,
                     sort_by='newest'):
    """Products a shopper may see: active, not deleted, live seller."""
    base_query = Product.query.join(Seller).filter(
        Product.is_active.is_(True),
        Product.deleted_at.is_(None),
        Seller.deleted_at.is_(None),
    )

    if seller_id is not None:
        base_query = base_query.filter(Product.seller_id == seller_id)

    category = (category or '').strip()
    if category:
        base_query = base_query.filter(Product.category.ilike(category))

    query_safe = _sanitize_query(query)
    if query_safe:
        base_query = base_query.filter(
            or_(
                Product.name.ilike(f'%{query_safe}%'),
                Product.description.ilike(f'%{query_safe}%')
            )
        )

    order = SORT_ORDERS.get(sort_by) or SORT_ORDERS['newest']
    return base_query.order_by(*order)


def seller_inventory_query(seller_id, include_deleted=False):
    base_query = Product.query.filter(Product.seller_id == seller_id)
    if not include_deleted:
        base_query = base_query.filter(Product.deleted_at.is_(None))
    return base_query.order_by(Product.created_at.desc(), Product.id.desc())
