from flask import Blueprint, jsonify, redirect, render_template, url_for
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('frontend', __name__)

# (url rule, endpoint, page component)
ROUTES = [
    ('/', 'home', 'Home'),
    ('/login', 'login', 'Login'),
    ('/register', 'register', 'Register'),
    ('/dashboard', 'dashboard', 'Dashboard'),
    ('/admin-dashboard', 'admin_dashboard', 'AdminDashboard'),
    ('/my-account', 'my_account', 'MyAccount'),
    ('/my-purchases', 'my_purchases', 'MyPurchases'),
    ('/product/<id>', 'product', 'ProductPage'),
    ('/logged-in-product/<id>', 'logged_in_product',
     'LoggedInProductPage'),
    ('/cart', 'cart', 'Cart'),
    ('/checkout', 'checkout', 'Checkout'),
    ('/seller-center', 'seller_center', 'SellerCenter'),
    ('/seller/<sellerId>', 'seller_store', 'SellerStore'),
]

PLACEHOLDER_PAGES = [
    ('/forgot-password', 'forgot_password', 'Forgot Password'),
    ('/terms', 'terms', 'Terms of Service'),
    ('/privacy', 'privacy', 'Privacy Policy'),
]

PLACEHOLDER_MESSAGE = 'This page is under construction.'


def _page_view(component):
    def view(**params):
        return render_template(
            'shell.html',
            page=component,
            params=params,
        )
    return view


def _placeholder_view(title):
    def view():
        return render_template(
            'placeholder.html',
            title=title,
            message=PLACEHOLDER_MESSAGE,
        )
    return view


for rule, endpoint, component in ROUTES:
    bp.add_url_rule(rule, endpoint, _page_view(component), methods=['GET'])

for rule, endpoint, title in PLACEHOLDER_PAGES:
    bp.add_url_rule(rule, endpoint, _placeholder_view(title), methods=['GET'])


@bp.route('/<path:path>', methods=['GET'])
def catch_all(path):
    # Unknown API paths are errors, not navigation
    if path == 'api' or path.startswith('api/'):
        return jsonify({'error': 'Not found'}), 404
    logger.debug("Unmatched path /%s, redirecting home", path)
    return redirect(url_for('frontend.home'))
