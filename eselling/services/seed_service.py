from eselling.extensions import db
from eselling.models import Admin
from flask import current_app
import logging

logger = logging.getLogger(__name__)

ADMIN_EMAIL = 'admin@eselling.com'


def seed_admin(password=None):
    """Create the bootstrap admin account if it does not exist yet."""
    admin = Admin.query.filter_by(email=ADMIN_EMAIL).first()
    if admin:
        logger.info("Admin account %s already exists", ADMIN_EMAIL)
        return admin, False

    admin = Admin(
        email=ADMIN_EMAIL,
        gcash_qr_url=None,
        gcash_number=None,
    )
    admin.set_password(
        password or current_app.config.get('ADMIN_SEED_PASSWORD', 'admin123')
    )
    db.session.add(admin)
    db.session.commit()
    logger.info("Created admin account %s", ADMIN_EMAIL)
    return admin, True
