from flask import current_app, request, jsonify, abort
from flask_login import current_user
from werkzeug.utils import secure_filename
from eselling.extensions import db
from decimal import Decimal, InvalidOperation
from functools import wraps
import json
import logging
import os
import uuid

logger = logging.getLogger(__name__)


class UploadError(ValueError):
    pass


def wants_json_response() -> bool:
    accept = request.headers.get('Accept', '') or ''
    xrw = request.headers.get('X-Requested-With')
    return (
        request.path.startswith('/api/')
        or request.is_json
        or ('application/json' in accept)
        or (xrw == 'XMLHttpRequest')
    )


def object_permission_required(
        model_class,
        id_param='id',
        owner_field='user_id',
        principal_owner_id=None,
        allow_admin=False):
    """Load ``model_class`` by the ``id_param`` view argument and check
    that the current principal owns it.

    ``owner_field`` is an attribute name or a callable taking the resource;
    ``principal_owner_id`` returns the id it must equal (defaults to
    ``current_user.id``). The loaded row is passed on as ``resource``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            resource_id = kwargs.get(id_param)
            if not resource_id:
                return jsonify({'error': 'Resource ID missing'}), 400

            resource = db.get_or_404(model_class, resource_id)

            if callable(owner_field):
                owner_id = owner_field(resource)
            else:
                owner_id = getattr(resource, owner_field, None)

            if allow_admin and current_user.role == 'ADMIN':
                kwargs['resource'] = resource
                return f(*args, **kwargs)

            expected = None
            if current_user.role == 'CUSTOMER':
                expected = (
                    principal_owner_id() if principal_owner_id
                    else current_user.id
                )
            if expected is None or owner_id != expected:
                logger.warning(
                    "Principal %s attempted to access %s %s",
                    current_user.get_id(),
                    model_class.__name__,
                    resource_id,
                )
                if wants_json_response():
                    return jsonify({
                        'error': 'No permission to access this resource'
                    }), 403
                abort(403)

            kwargs['resource'] = resource
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def current_seller_id():
    seller = getattr(current_user, 'seller', None)
    return seller.id if seller is not None else None


def request_data():
    """Body fields from either a JSON or a multipart/form request."""
    if request.is_json:
        data = request.get_json(silent=True)
        # Only a JSON object carries named fields
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def json_field(data, key, default=None):
    # Multipart bodies carry lists/objects as JSON strings
    value = data.get(key, default)
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return default
    return value


def parse_decimal(value):
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def parse_int(value):
    if value is None or value == '' or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def paginate_query(query, page=1, per_page=20):
    pagination = query.paginate(
        page=page,
        per_page=per_page,
        error_out=False
    )
    return {
        'items': pagination.items,
        'page': pagination.page,
        'pages': pagination.pages,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'has_next': pagination.has_next,
        'has_prev': pagination.has_prev
    }


def page_args():
    page = max(1, request.args.get('page', 1, type=int))
    per_page = request.args.get(
        'limit',
        current_app.config.get('ITEMS_PER_PAGE', 20),
        type=int,
    )
    return page, max(1, min(per_page, 100))


def save_upload(file_storage, subdir, prefix=''):
    """Store an uploaded image under static/<UPLOAD_FOLDER>/<subdir>/.

    Returns the public URL path of the stored file.
    """
    filename = secure_filename(file_storage.filename or '')
    ext = (filename.rsplit('.', 1)[-1] if '.' in filename else '').lower()
    allowed = current_app.config.get(
        'ALLOWED_IMAGE_EXTENSIONS', ('jpg', 'jpeg', 'png', 'gif', 'webp'))
    if ext not in allowed:
        raise UploadError(
            f"Unsupported image type ({'/'.join(allowed)} only)")

    rel_dir = os.path.join(current_app.config['UPLOAD_FOLDER'], subdir)
    abs_dir = os.path.join(current_app.static_folder, rel_dir)
    os.makedirs(abs_dir, exist_ok=True)

    new_name = f"{prefix}{uuid.uuid4().hex}.{ext}"
    file_storage.save(os.path.join(abs_dir, new_name))

    rel_path = f"{rel_dir}/{new_name}".replace('\\', '/')
    return f"{current_app.static_url_path}/{rel_path}"


def remove_upload(url):
    """Best-effort removal of a file previously stored by save_upload."""
    prefix = f"{current_app.static_url_path}/"
    if not url or not url.startswith(prefix):
        return
    abs_path = os.path.join(current_app.static_folder, url[len(prefix):])
    try:
        if os.path.isfile(abs_path):
            os.remove(abs_path)
    except OSError:
        logger.warning("Could not remove old upload %s", abs_path)
