import json

from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError as SchemaError

from corporate.auth import admin_required, is_authenticated
from corporate.errors import CatalogError, ValidationError
from corporate.i18n import AVAILABLE_LANGUAGES, get_translation, normalise_lang, serialise_translations
from corporate.models import (
    categories_schema,
    new_category_schema,
    products_schema,
    slides_schema,
    slugify,
    upload_schema,
)

bp = Blueprint('corporate', __name__)


def services():
    return current_app.extensions['corporate']


def current_lang():
    candidate = request.args.get('lang') or request.accept_languages.best_match(AVAILABLE_LANGUAGES)
    return normalise_lang(candidate)


def t(key, default=None):
    return get_translation(key, current_lang(), default)


def json_success(message='OK', status=200, **extra):
    """Create a standard JSON success response."""
    payload = {'success': True}
    if message is not None:
        payload['message'] = message
    if extra:
        payload.update(extra)
    return jsonify(payload), status


def json_error(message, status=400, **extra):
    """Create a standard JSON error response."""
    payload = {'success': False, 'error': message}
    if extra:
        payload.update(extra)
    return jsonify(payload), status


def request_data():
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object.')
        return data
    return request.form


def parse_json_field(data, name):
    raw = data.get(name)
    if raw is None or raw == '':
        raise ValidationError(f'Missing {name}.')
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError(f'{name} is not valid JSON.') from exc


def load_payload(schema, data):
    fields = {name: data[name] for name in schema.fields if name in data}
    try:
        return schema.load(fields)
    except SchemaError as exc:
        raise ValidationError(f'Invalid payload: {exc.messages}') from exc


@bp.app_errorhandler(CatalogError)
def handle_catalog_error(exc):
    if exc.status >= 500:
        current_app.logger.error('%s %s failed: %s %s', request.method, request.path,
                                 exc.message, exc.context or '')
        return json_error(t(exc.message_key), status=exc.status)
    current_app.logger.warning('%s %s rejected: %s', request.method, request.path, exc.message)
    return json_error(exc.message, status=exc.status, detail=t(exc.message_key))


# catalog

@bp.route('/products', methods=['GET'])
def list_products():
    try:
        catalog = services().catalog.get_catalog()
    except Exception:
        current_app.logger.exception('Error fetching products')
        return jsonify({'error': t('catalog.error'), 'products': [], 'categories': []}), 500
    return jsonify({
        'products': products_schema.dump(catalog['products']),
        'categories': categories_schema.dump(catalog['categories']),
        'cached': catalog.get('cached', False),
    })


@bp.route('/products', methods=['POST'])
@admin_required
def add_products():
    data = request_data()
    mutator = services().mutator

    if data.get('action') == 'add-category':
        payload = load_payload(new_category_schema, data)
        category_id = payload.get('id')
        if category_id is None:
            category_id = slugify(payload['label'])
        category = mutator.add_category(category_id, payload['label'], payload.get('label_ar'))
        return json_success(t('category.created'), status=201, category=category)

    file = request.files.get('file')
    if file is None:
        raise ValidationError('Expected an add-category action or a file upload.')
    payload = load_payload(upload_schema, data)
    result = mutator.upload_product_image(file, payload['category'])
    return json_success(t('product.uploaded'), status=201,
                        path=result['path'], url=result['publicUrl'])


@bp.route('/products', methods=['DELETE'])
@admin_required
def delete_products():
    mutator = services().mutator
    path = request.args.get('path')
    url = request.args.get('url')
    category_id = request.args.get('categoryId')

    if path or url:
        if not path:
            path = services().storage.path_from_public_url(url)
        mutator.delete_product_image(path)
        return json_success(t('product.deleted'))
    if category_id:
        mutator.delete_category(category_id)
        return json_success(t('category.deleted'))
    raise ValidationError('Specify path, url or categoryId.')


# carousel

@bp.route('/carousel', methods=['GET'])
def list_slides():
    slides = services().repository.get_carousel_slides()
    return jsonify({'slides': slides_schema.dump(slides)})


@bp.route('/carousel', methods=['POST'])
@admin_required
def save_slide():
    data = request_data()
    mutator = services().mutator

    if data.get('action') == 'update-order':
        slides = mutator.reorder_carousel_slides(parse_json_field(data, 'slides'))
        return json_success(t('carousel.reordered'), slides=slides_schema.dump(slides))

    slide = mutator.upsert_carousel_slide(parse_json_field(data, 'slideData'),
                                          request.files.get('file'))
    return json_success(t('carousel.saved'), slide=slides_schema.dump([slide])[0])


@bp.route('/carousel', methods=['DELETE'])
@admin_required
def delete_slide():
    slide_id = request.args.get('id')
    if not slide_id:
        raise ValidationError('Missing slide ID.')
    services().mutator.delete_carousel_slide(slide_id)
    return json_success(t('carousel.deleted'))


# access

@bp.route('/login', methods=['POST'])
def login():
    data = request_data()
    auth = services().auth
    if not auth.check_password(data.get('password')):
        current_app.logger.warning('Rejected admin login from %s', request.remote_addr)
        return json_error(t('auth.login.error'), status=401)

    response, status = json_success(t('auth.login.success'))
    response.set_cookie(
        current_app.config['ADMIN_COOKIE_NAME'],
        auth.issue_token(),
        max_age=current_app.config['ADMIN_COOKIE_MAX_AGE'],
        httponly=True,
        secure=current_app.config['ADMIN_COOKIE_SECURE'],
        samesite='Lax',
    )
    return response, status


@bp.route('/logout', methods=['POST'])
def logout():
    response, status = json_success(t('auth.logout.success'))
    response.delete_cookie(current_app.config['ADMIN_COOKIE_NAME'])
    return response, status


@bp.route('/session', methods=['GET'])
def session_status():
    return jsonify({'authenticated': is_authenticated()})


@bp.route('/messages', methods=['GET'])
def messages():
    return jsonify(serialise_translations())


@bp.route('/health', methods=['GET'])
def health():
    storage = services().storage
    return jsonify({
        'backend': 'running',
        'storage_configured': storage.configured,
        'storage_key': 'set' if current_app.config.get('STORAGE_KEY') else 'not set',
        'bucket': storage.bucket,
    })
