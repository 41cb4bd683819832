from eselling.extensions import db
from eselling.models import AuditLog, User


def _register(client, **overrides):
    body = {
        'first_name': 'Maria',
        'last_name': 'Santos',
        'email': 'maria@example.com',
        'password': 'secret-pass',
        'password_confirmation': 'secret-pass',
    }
    body.update(overrides)
    return client.post('/api/register', json=body)


def test_register_logs_in(app, client):
    resp = _register(client, email='Maria@Example.com')
    assert resp.status_code == 201
    user = resp.get_json()['user']
    assert user['email'] == 'maria@example.com'
    assert (user['first_name'], user['last_name']) == ('Maria', 'Santos')
    assert user['seller'] is None

    assert client.get('/api/user').status_code == 200

    with app.app_context():
        audit = AuditLog.query.filter_by(action='REGISTER_USER').one()
        assert audit.actor_role == 'CUSTOMER'
        assert audit.get_payload() == {'email': 'maria@example.com'}


def test_register_validation(client, factory):
    factory.user(email='taken@example.com')

    assert _register(client, first_name='').status_code == 400
    assert _register(client, email='nope').status_code == 400
    assert _register(
        client, password='short', password_confirmation='short'
    ).status_code == 400
    assert _register(
        client, password_confirmation='different-pass').status_code == 400

    resp = _register(client, email='taken@example.com')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Email already registered'


def test_login_and_logout(app, client, factory):
    factory.user(email='ana@example.com')

    resp = client.post('/api/login', json={
        'email': 'ana@example.com', 'password': 'wrong-password'})
    assert resp.status_code == 401

    resp = client.post('/api/login', json={
        'email': 'ana@example.com', 'password': 'password123'})
    assert resp.status_code == 200

    client.post('/api/logout')
    resp = client.get('/api/user')
    assert resp.status_code == 401
    assert resp.get_json()['login_required'] is True

    with app.app_context():
        actions = [a.action for a in AuditLog.query.order_by(AuditLog.id)]
    assert actions == ['LOGIN_FAILED', 'LOGIN_SUCCESS', 'LOGOUT']


def test_update_profile_and_password(app, factory, login, image):
    factory.user(email='ana@example.com')
    client = login('ana@example.com')

    resp = client.put('/api/user', json={
        'contact_number': '09170000000',
        'new_password': 'brand-new-pass',
        'new_password_confirmation': 'brand-new-pass',
        'current_password': 'wrong',
    })
    assert resp.status_code == 400

    resp = client.put('/api/user', json={
        'contact_number': '09170000000',
        'new_password': 'brand-new-pass',
        'new_password_confirmation': 'brand-new-pass',
        'current_password': 'password123',
    })
    assert resp.status_code == 200
    assert resp.get_json()['user']['contact_number'] == '09170000000'

    resp = client.post(
        '/api/user',
        data={'profile_picture': image('me.jpg')},
        content_type='multipart/form-data',
    )
    assert resp.status_code == 200
    assert resp.get_json()['user']['profile_picture_url'].startswith(
        '/static/uploads/profile_pictures/')

    with app.app_context():
        user = User.query.filter_by(email='ana@example.com').one()
        assert user.check_password('brand-new-pass')


def test_upload_rejects_non_images(factory, login, image):
    factory.user(email='ana@example.com')
    client = login('ana@example.com')

    resp = client.post(
        '/api/user',
        data={'profile_picture': image('notes.txt')},
        content_type='multipart/form-data',
    )
    assert resp.status_code == 400


def test_delete_account(app, factory, login):
    user_id = factory.user(email='ana@example.com')
    client = login('ana@example.com')

    assert client.delete('/api/user').status_code == 200
    assert client.get('/api/user').status_code == 401

    with app.app_context():
        assert db.session.get(User, user_id) is None


def test_non_object_json_body_is_a_validation_error(client):
    resp = client.post('/api/login', json=[1])
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Email and password cannot be empty'

    assert client.post('/api/register', json='maria').status_code == 400
