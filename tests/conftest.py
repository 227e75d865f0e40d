import itertools
import json

import pytest

from corporate import create_app
from corporate.errors import ObjectNotFound, StorageUnavailableError
from corporate.storage import ExistenceProber, StorageClient

BASE_URL = 'https://storage.test'
PUBLIC = f'{BASE_URL}/storage/v1/object/public/corporate'


class MemoryStorage(StorageClient):
    """Bucket kept in a dict; listing behaves like the storage REST API."""

    def __init__(self):
        super().__init__(BASE_URL, 'anon-key', 'corporate')
        self.objects = {}
        self.hidden_prefixes = set()
        self.unreachable = False
        self.failing = set()
        self.calls = []
        self._ids = itertools.count(1)

    def _check(self, operation, path):
        self.calls.append((operation, path))
        if self.unreachable:
            raise StorageUnavailableError(f'{operation} {path}: unreachable')
        if operation in self.failing or path in self.failing:
            raise StorageUnavailableError(f'{operation} {path}: failing')

    def put(self, path, data=b'img', mimetype='image/jpeg'):
        self.objects[path] = {'data': data, 'mimetype': mimetype, 'id': f'obj-{next(self._ids)}'}

    def put_json(self, path, document):
        self.put(path, json.dumps(document).encode('utf-8'), 'application/json')

    def get_json(self, path):
        return json.loads(self.objects[path]['data'])

    def upload(self, path, data, content_type=None, upsert=False):
        self._check('upload', path)
        self.put(path, data, content_type or 'application/octet-stream')
        return {'path': path, 'Key': f'corporate/{path}', 'publicUrl': self.public_url(path)}

    def download(self, path):
        self._check('download', path)
        if path not in self.objects:
            raise ObjectNotFound(f'{path} not found', path=path)
        return self.objects[path]['data']

    def list(self, prefix, limit=100, offset=0, sort_by='name', order='asc'):
        self._check('list', prefix)
        if prefix in self.hidden_prefixes:
            return []
        folder = prefix.rstrip('/') + '/'
        files, folders = {}, set()
        for path, obj in self.objects.items():
            if not path.startswith(folder):
                continue
            rest = path[len(folder):]
            if '/' in rest:
                folders.add(rest.split('/', 1)[0])
            else:
                files[rest] = obj
        entries = [{'name': name, 'id': None, 'metadata': None} for name in folders]
        entries += [{'name': name, 'id': obj['id'], 'metadata': {'mimetype': obj['mimetype']}}
                    for name, obj in files.items()]
        entries.sort(key=lambda e: e['name'])
        return entries[offset:offset + limit]

    def remove(self, paths):
        paths = list(paths)
        self._check('remove', ','.join(paths))
        removed = []
        for path in paths:
            if self.objects.pop(path, None) is not None:
                removed.append({'name': path})
        return removed


class MemoryProber(ExistenceProber):
    """Probes answer from the in-memory bucket; ``broken`` URLs never resolve."""

    def __init__(self, storage):
        super().__init__(timeout=0.1)
        self.storage = storage
        self.broken = set()
        self.probed = []

    def exists(self, url):
        self.probed.append(url)
        if url in self.broken or not url.startswith(PUBLIC + '/'):
            return False
        return self.storage.path_from_public_url(url) in self.storage.objects


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def prober(storage):
    return MemoryProber(storage)


@pytest.fixture
def app(storage, prober):
    app = create_app({
        'TESTING': True,
        'STORAGE_URL': BASE_URL,
        'STORAGE_BUCKET': 'corporate',
        'ADMIN_PASSWORD': 'letmein',
        'AUTO_TRANSLATE': False,
        'CATALOG_MAX_WORKERS': 4,
    }, storage=storage, prober=prober)
    return app


@pytest.fixture
def services(app):
    return app.extensions['corporate']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(client):
    response = client.post('/login', json={'password': 'letmein'})
    assert response.status_code == 200
    return client
