import json
import os

from flask import Flask
from flask_marshmallow import Marshmallow

ma = Marshmallow()

from corporate.admin import AdminMutator, translate_text  # noqa: E402
from corporate.auth import StaticPasswordAuth  # noqa: E402
from corporate.catalog import Catalog, CatalogCache, ProductListingResolver  # noqa: E402
from corporate.documents import (  # noqa: E402
    CAROUSEL_PATH,
    CATEGORIES_PATH,
    BlobDocumentStore,
    MetadataRepository,
)
from corporate.storage import ExistenceProber, StorageClient  # noqa: E402


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_json(name, default=None):
    value = os.environ.get(name)
    if not value:
        return default
    return json.loads(value)


def load_config():
    """Configuration from the environment, with the deployment defaults."""
    production = (os.environ.get('APP_ENV') or os.environ.get('FLASK_ENV')) == 'production'
    return {
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'change-me-please'),
        'STORAGE_URL': os.environ.get('STORAGE_URL', 'https://logewufqgmgxufkovpuw.supabase.co'),
        'STORAGE_KEY': os.environ.get('STORAGE_KEY', ''),
        'STORAGE_BUCKET': os.environ.get('STORAGE_BUCKET', 'corporate'),
        'STORAGE_TIMEOUT': float(os.environ.get('STORAGE_TIMEOUT', '10')),
        'ADMIN_PASSWORD': os.environ.get('ADMIN_PASSWORD', 'admin123'),
        'ADMIN_COOKIE_NAME': os.environ.get('ADMIN_COOKIE_NAME', 'admin_session'),
        'ADMIN_COOKIE_MAX_AGE': int(os.environ.get('ADMIN_COOKIE_MAX_AGE', 60 * 60 * 24)),
        'ADMIN_COOKIE_SECURE': _env_bool('ADMIN_COOKIE_SECURE', production),
        'CATALOG_CACHE_TTL': float(os.environ.get('CATALOG_CACHE_TTL', 600)),
        'CATALOG_MAX_WORKERS': int(os.environ.get('CATALOG_MAX_WORKERS', 8)),
        'LISTING_PAGE_SIZE': min(int(os.environ.get('LISTING_PAGE_SIZE', 100)), 100),
        'PROBE_TIMEOUT': float(os.environ.get('PROBE_TIMEOUT', 1.5)),
        'VERIFY_LISTED_OBJECTS': _env_bool('VERIFY_LISTED_OBJECTS', True),
        'FALLBACK_IMAGES': _env_json('FALLBACK_IMAGES', {}),
        'AUTO_TRANSLATE': _env_bool('AUTO_TRANSLATE', True),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
    }


class Services:
    """Everything the routes talk to, built once per application."""

    def __init__(self, storage, prober, auth, cache, repository, catalog, mutator):
        self.storage = storage
        self.prober = prober
        self.auth = auth
        self.cache = cache
        self.repository = repository
        self.catalog = catalog
        self.mutator = mutator

    @classmethod
    def from_config(cls, config, storage=None, prober=None, auth=None):
        storage = storage or StorageClient(config['STORAGE_URL'], config['STORAGE_KEY'],
                                           config['STORAGE_BUCKET'],
                                           timeout=config['STORAGE_TIMEOUT'])
        prober = prober or ExistenceProber(timeout=config['PROBE_TIMEOUT'],
                                           max_workers=config['CATALOG_MAX_WORKERS'])
        auth = auth or StaticPasswordAuth(config['ADMIN_PASSWORD'], config['SECRET_KEY'],
                                          max_age=config['ADMIN_COOKIE_MAX_AGE'])
        cache = CatalogCache(ttl=config['CATALOG_CACHE_TTL'])
        repository = MetadataRepository(BlobDocumentStore(storage, CATEGORIES_PATH),
                                        BlobDocumentStore(storage, CAROUSEL_PATH),
                                        cache=cache)
        resolver = ProductListingResolver.for_storage(
            storage, prober,
            page_size=config['LISTING_PAGE_SIZE'],
            verify=config['VERIFY_LISTED_OBJECTS'],
            fallback_images=config['FALLBACK_IMAGES'],
            max_workers=config['CATALOG_MAX_WORKERS'],
        )
        mutator = AdminMutator(repository, storage, cache=cache,
                               translator=translate_text if config['AUTO_TRANSLATE'] else None)
        return cls(storage, prober, auth, cache, repository,
                   Catalog(repository, resolver, cache), mutator)


def create_app(test_config=None, storage=None, prober=None, auth=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if test_config:
        app.config.update(test_config)
    app.secret_key = app.config['SECRET_KEY']
    app.logger.setLevel(app.config['LOG_LEVEL'])

    ma.init_app(app)
    app.extensions['corporate'] = Services.from_config(app.config, storage=storage,
                                                       prober=prober, auth=auth)

    from corporate import routes
    app.register_blueprint(routes.bp)
    return app
