from flask import Flask
from flask_migrate import Migrate
from flask_login import LoginManager, current_user
from sqlalchemy import event
from eselling.extensions import db
from eselling.config import Config
from eselling.middleware import setup_auth_middleware, register_error_handlers
import click
import logging
import os

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(Config.LOG_FILE, delay=True),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

migrate = Migrate()
login_manager = LoginManager()
login_manager.login_view = 'frontend.login'
login_manager.login_message = 'Please log in to access this page.'

LOGOUT_DIALOG = {
    'title': 'Confirm Logout',
    'message': (
        'Are you sure you want to logout? You will need to sign in again '
        'to access your account.'
    ),
    'confirm_text': 'Logout',
    'cancel_text': 'Cancel',
    'variant': 'warning',
    'is_open': False,
}


def create_app(config_class=Config):
    static_dir = os.path.abspath(
        os.path.join(
            os.path.dirname(__file__),
            "..",
            "static"))
    app = Flask(
        __name__,
        static_folder=static_dir,
        static_url_path="/static",
    )
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    with app.app_context():
        enable_sqlite_savepoints(db.engine)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Customers and admins live in separate tables; the session id
    # carries the kind ("user:3", "admin:1").
    from eselling.models import User, Admin, CartItem

    @login_manager.user_loader
    def load_user(principal_id):
        kind, _, raw_id = (principal_id or '').partition(':')
        if not raw_id.isdigit():
            return None
        if kind == 'admin':
            return db.session.get(Admin, int(raw_id))
        if kind == 'user':
            user = db.session.get(User, int(raw_id))
            if user and user.is_active:
                return user
        return None

    # Register blueprints
    from eselling.blueprints import (
        admin,
        auth,
        cart,
        frontend,
        orders,
        products,
        refunds,
        sellers,
    )

    # Routes are absolute; a url_prefix would double the path.
    app.register_blueprint(auth.bp, url_prefix='/')
    app.register_blueprint(sellers.bp, url_prefix='/')
    app.register_blueprint(products.bp, url_prefix='/')
    app.register_blueprint(cart.bp, url_prefix='/')
    app.register_blueprint(orders.bp, url_prefix='/')
    app.register_blueprint(refunds.bp, url_prefix='/')
    app.register_blueprint(admin.bp, url_prefix='/')
    # Registered last: owns the catch-all route
    app.register_blueprint(frontend.bp, url_prefix='/')

    # Setup authentication middleware (site-wide login protection)
    setup_auth_middleware(app)
    register_error_handlers(app)

    @app.context_processor
    def inject_shell_state():
        cart_count = 0
        if current_user.is_authenticated and current_user.role == 'CUSTOMER':
            cart_count = CartItem.query.filter_by(
                user_id=current_user.id).count()
        return {
            'logout_dialog': dict(LOGOUT_DIALOG),
            'principal': current_user,
            'cart_count': cart_count,
        }

    register_commands(app)

    # Note: Database tables are managed via Flask-Migrate
    # Use 'flask db upgrade' to create/update tables

    logger.info("Flask application initialized")
    return app


def register_commands(app):

    @app.cli.command('seed')
    @click.option('--password', default=None,
                  help='Password for the bootstrap admin account.')
    def seed_command(password):
        """Insert the bootstrap admin account."""
        from eselling.services.seed_service import seed_admin, ADMIN_EMAIL

        _, created = seed_admin(password=password)
        if created:
            click.echo(f'Created admin account {ADMIN_EMAIL}')
        else:
            click.echo(f'Admin account {ADMIN_EMAIL} already exists')

    @app.cli.command('recount-sellers')
    def recount_sellers_command():
        """Rebuild seller product/order counters from the child rows."""
        from eselling.services.seller_stats_service import recount_all_sellers

        fixed = recount_all_sellers()
        click.echo(f'Corrected counters for {fixed} seller(s)')


def enable_sqlite_savepoints(engine):
    """Let pysqlite roll back across SAVEPOINTs.

    The driver opens no transaction before a SAVEPOINT, so releasing the
    outermost one commits. Emitting BEGIN ourselves keeps nested inserts
    inside the session transaction.
    """
    if engine.dialect.name != 'sqlite':
        return

    @event.listens_for(engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin(conn):
        conn.exec_driver_sql('BEGIN')
