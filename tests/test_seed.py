from eselling.extensions import db
from eselling.models import Admin, Seller
from eselling.services.seed_service import ADMIN_EMAIL, seed_admin


def test_seed_admin_is_idempotent(app):
    with app.app_context():
        admin, created = seed_admin()
        assert created is True
        assert admin.email == ADMIN_EMAIL == 'admin@eselling.com'
        assert admin.check_password('admin123')
        assert admin.gcash_number is None

        again, created = seed_admin(password='something-else')
        assert created is False
        assert again.id == admin.id
        assert again.check_password('admin123')
        assert Admin.query.count() == 1


def test_seed_command(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['seed', '--password', 'cli-secret'])
    assert result.exit_code == 0
    assert 'Created admin account admin@eselling.com' in result.output

    result = runner.invoke(args=['seed'])
    assert 'already exists' in result.output

    with app.app_context():
        admin = Admin.query.one()
        assert admin.check_password('cli-secret')


def test_recount_sellers_command(app, factory):
    seller_id = factory.seller()
    factory.product(seller_id)
    factory.product(seller_id)
    buyer = factory.user()
    factory.order(buyer, seller_id)

    with app.app_context():
        seller = db.session.get(Seller, seller_id)
        seller.product_count = 7
        seller.order_count = 0
        db.session.commit()

    result = app.test_cli_runner().invoke(args=['recount-sellers'])
    assert result.exit_code == 0
    assert 'Corrected counters for 1 seller(s)' in result.output

    with app.app_context():
        seller = db.session.get(Seller, seller_id)
        assert (seller.product_count, seller.order_count) == (2, 1)
