from io import BytesIO

import pytest

from corporate.catalog import STOCK_IMAGES
from corporate.documents import CAROUSEL_PATH, CATEGORIES_PATH

from conftest import PUBLIC


def test_products_scenario(storage, client):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army & Tactical'}])
    storage.put('army/1.jpg')
    storage.put('army/2.jpg')

    response = client.get('/products')

    assert response.status_code == 200
    body = response.get_json()
    assert [p['name'] for p in body['products']] == ['Army & Tactical #1', 'Army & Tactical #2']
    assert body['categories'] == [{'id': 'army', 'label': 'Army & Tactical'}]
    assert body['cached'] is False


def test_products_served_from_cache_second_time(storage, client):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    client.get('/products')
    response = client.get('/products')

    assert response.get_json()['cached'] is True


def test_products_with_defaults_never_empty(client):
    body = client.get('/products').get_json()

    assert len(body['categories']) == 11
    assert len(body['products']) == 11 * len(STOCK_IMAGES)


def test_products_500_when_storage_unreachable(storage, client):
    storage.unreachable = True

    response = client.get('/products')

    assert response.status_code == 500
    body = response.get_json()
    assert body['products'] == [] and body['categories'] == []
    assert body['error'] == 'Failed to fetch products'


def test_add_category_requires_session(storage, client):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    response = client.post('/products', json={'action': 'add-category', 'id': 'new-cat', 'label': 'New Cat'})

    assert response.status_code == 401
    assert storage.get_json(CATEGORIES_PATH) == [{'id': 'army', 'label': 'Army'}]


def test_add_category_and_cache_invalidation(storage, admin):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])
    admin.get('/products')

    response = admin.post('/products', data={'action': 'add-category', 'id': 'new-cat', 'label': 'New Cat'})

    assert response.status_code == 201
    assert response.get_json()['success'] is True
    body = admin.get('/products').get_json()
    assert body['cached'] is False
    assert [c['id'] for c in body['categories']] == ['army', 'new-cat']


def test_add_category_derives_slug_from_label(storage, admin):
    storage.put_json(CATEGORIES_PATH, [])

    admin.post('/products', json={'action': 'add-category', 'label': 'Challenge Coins'})

    assert storage.get_json(CATEGORIES_PATH) == [{'id': 'challenge-coins', 'label': 'Challenge Coins'}]


def test_duplicate_category_is_400(storage, admin):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    response = admin.post('/products', json={'action': 'add-category', 'id': 'army', 'label': 'Army'})

    assert response.status_code == 400
    assert response.get_json()['success'] is False


def test_upload_product_image(storage, admin):
    response = admin.post('/products', data={
        'category': 'army',
        'file': (BytesIO(b'jpeg'), 'tank.jpg'),
    }, content_type='multipart/form-data')

    assert response.status_code == 201
    path = response.get_json()['path']
    assert path.startswith('army/') and path.endswith('-tank.jpg')
    assert storage.objects[path]['data'] == b'jpeg'


def test_upload_to_unknown_category_is_400(admin):
    response = admin.post('/products', data={
        'category': 'navy',
        'file': (BytesIO(b'jpeg'), 'ship.jpg'),
    }, content_type='multipart/form-data')

    assert response.status_code == 400


@pytest.mark.parametrize('payload', [
    {'action': 'add-category', 'id': 'x', 'label': 123},
    {'action': 'add-category', 'label': ['a']},
    {'action': 'add-category', 'id': ['x'], 'label': 'X'},
    {'action': 'add-category', 'label': 'X', 'label_ar': {'ar': 'x'}},
    {'action': 'add-category'},
])
def test_add_category_rejects_malformed_payload(storage, admin, payload):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    response = admin.post('/products', json=payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body['success'] is False
    assert body['detail']
    assert storage.get_json(CATEGORIES_PATH) == [{'id': 'army', 'label': 'Army'}]


def test_upload_without_category_is_400(storage, admin):
    response = admin.post('/products', data={
        'file': (BytesIO(b'jpeg'), 'tank.jpg'),
    }, content_type='multipart/form-data')

    assert response.status_code == 400
    assert not [p for p in storage.objects if p.endswith('-tank.jpg')]


def test_post_without_action_or_file_is_400(admin):
    assert admin.post('/products', json={'label': 'x'}).status_code == 400


def test_delete_product_by_path_and_url(storage, admin):
    storage.put('army/1.jpg')
    storage.put('army/2 b.jpg')

    assert admin.delete('/products?path=army/1.jpg').status_code == 200
    assert admin.delete('/products', query_string={'url': f'{PUBLIC}/army/2%20b.jpg'}).status_code == 200
    assert 'army/1.jpg' not in storage.objects
    assert 'army/2 b.jpg' not in storage.objects


def test_delete_product_with_foreign_url_is_400(storage, admin):
    storage.put('army/1.jpg')

    response = admin.delete('/products', query_string={'url': 'https://elsewhere.test/army/1.jpg'})

    assert response.status_code == 400
    assert 'army/1.jpg' in storage.objects


def test_delete_missing_targets_are_404(storage, admin):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    assert admin.delete('/products?path=army/none.jpg').status_code == 404
    assert admin.delete('/products?categoryId=navy').status_code == 404
    assert admin.delete('/products').status_code == 400


def test_client_error_body_carries_message_and_detail(storage, admin):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])

    response = admin.delete('/products?categoryId=navy')

    assert response.status_code == 404
    body = response.get_json()
    assert body['success'] is False
    assert 'navy' in body['error']
    assert body['detail'] == 'Item not found.'


def test_delete_category_endpoint(storage, admin):
    storage.put_json(CATEGORIES_PATH, [{'id': 'army', 'label': 'Army'}])
    storage.put('army/1.jpg')

    response = admin.delete('/products?categoryId=army')

    assert response.status_code == 200
    assert storage.get_json(CATEGORIES_PATH) == []
    assert 'army/1.jpg' in storage.objects


def test_delete_requires_session(storage, client):
    storage.put('army/1.jpg')

    assert client.delete('/products?path=army/1.jpg').status_code == 401
    assert 'army/1.jpg' in storage.objects


def test_carousel_empty_when_document_missing(client):
    response = client.get('/carousel')

    assert response.status_code == 200
    assert response.get_json() == {'slides': []}


def test_carousel_upsert_with_file(storage, admin):
    response = admin.post('/carousel', data={
        'slideData': '{"title_en": "Quality", "title_ar": "الجودة"}',
        'file': (BytesIO(b'png'), 'hero.png'),
    }, content_type='multipart/form-data')

    assert response.status_code == 200
    slide = response.get_json()['slide']
    assert slide['image'].startswith(f'{PUBLIC}/carousel/')
    assert slide['order'] == 0
    slides = admin.get('/carousel').get_json()['slides']
    assert [s['title_ar'] for s in slides] == ['الجودة']


def test_carousel_reorder(storage, admin):
    storage.put_json(CAROUSEL_PATH, [{'id': 'a', 'order': 0}, {'id': 'b', 'order': 1}])

    response = admin.post('/carousel', data={
        'action': 'update-order',
        'slides': '[{"id": "b", "order": 0}, {"id": "a", "order": 1}]',
    })

    assert response.status_code == 200
    assert [s['id'] for s in admin.get('/carousel').get_json()['slides']] == ['b', 'a']


def test_carousel_bad_payloads(admin):
    assert admin.post('/carousel', data={}).status_code == 400
    assert admin.post('/carousel', data={'slideData': '{oops'}).status_code == 400


def test_carousel_delete(storage, admin):
    storage.put_json(CAROUSEL_PATH, [{'id': 'a', 'image': 'not a url', 'order': 0}])

    assert admin.delete('/carousel?id=missing').status_code == 404
    assert admin.delete('/carousel').status_code == 400
    assert admin.delete('/carousel?id=a').status_code == 200
    assert storage.get_json(CAROUSEL_PATH) == []


def test_carousel_mutations_require_session(client):
    assert client.post('/carousel', data={'slideData': '{}'}).status_code == 401
    assert client.delete('/carousel?id=a').status_code == 401


def test_storage_failure_on_write_is_500(storage, admin):
    storage.put_json(CATEGORIES_PATH, [])
    storage.failing.add('upload')

    response = admin.post('/products', json={'action': 'add-category', 'id': 'x', 'label': 'X'})

    assert response.status_code == 500
    assert 'anon-key' not in response.get_data(as_text=True)


def test_error_messages_follow_language(client):
    response = client.post('/products?lang=ar', json={'action': 'add-category'})

    assert response.status_code == 401
    assert response.get_json()['detail'] == 'غير مصرح'


def test_health_and_messages(client):
    assert client.get('/health').get_json()['storage_configured'] is True
    assert 'ar' in client.get('/messages').get_json()
