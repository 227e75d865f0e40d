"""Write operations behind the admin dashboard.

Each operation reads the whole metadata document, changes it and writes it
back. Deleting a category leaves its images in the bucket.
"""

import logging
import time

from deep_translator import GoogleTranslator
from marshmallow import ValidationError as SchemaError
from werkzeug.utils import secure_filename

from corporate.errors import (
    CatalogError,
    ConflictError,
    NotFoundError,
    UpstreamStorageError,
    ValidationError,
)
from corporate.models import SLIDE_TEXT_FIELDS, slide_schema, slides_schema

logger = logging.getLogger(__name__)

CAROUSEL_FOLDER = 'carousel'
PROTECTED_PREFIXES = ('_metadata/',)


def translate_text(text, target_lang='ar', source_lang='auto'):
    """Translate *text* into *target_lang*; ``None`` when the service fails."""
    if not text:
        return None
    try:
        return GoogleTranslator(source=source_lang, target=target_lang).translate(text)
    except Exception as exc:
        logger.warning('Auto-translation failed: %s', exc)
        return None


def _text(value, name):
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'{name} must be a string.')
    return value.strip()


class AdminMutator:
    def __init__(self, repository, storage, cache=None, translator=None, clock=time.time):
        self.repository = repository
        self.storage = storage
        self.cache = cache
        self.translator = translator
        self.clock = clock

    def _timestamp(self):
        return str(int(self.clock() * 1000))

    def _invalidate(self):
        if self.cache is not None:
            self.cache.invalidate()

    # categories

    def add_category(self, category_id, label, label_ar=None):
        category_id = _text(category_id, 'id')
        label = _text(label, 'label')
        label_ar = _text(label_ar, 'label_ar') or None
        if not category_id or not label:
            raise ValidationError('Category id and label are required.')
        if '/' in category_id or category_id.startswith(('.', '_')):
            raise ValidationError(f'Invalid category id {category_id!r}.')

        categories, version = self.repository.load_categories()
        if any(c['id'] == category_id for c in categories):
            raise ConflictError(f'Category {category_id!r} already exists.')

        if label_ar is None and self.translator is not None:
            label_ar = self.translator(label, target_lang='ar')
        category = {'id': category_id, 'label': label}
        if label_ar:
            category['label_ar'] = label_ar
        categories.append(category)

        if not self.repository.save_categories(categories, version):
            raise UpstreamStorageError('Failed to save categories.')
        logger.info('Added category %s', category_id)
        return category

    def delete_category(self, category_id):
        categories, version = self.repository.load_categories()
        remaining = [c for c in categories if c['id'] != category_id]
        if len(remaining) == len(categories):
            raise NotFoundError(f'Category {category_id!r} not found.')
        if not self.repository.save_categories(remaining, version):
            raise UpstreamStorageError('Failed to save categories.')
        logger.info('Removed category %s; its images stay in storage', category_id)

    # product images

    def upload_product_image(self, file, category_id):
        if file is None or not getattr(file, 'filename', None):
            raise ValidationError('No file provided.')
        known = {c['id'] for c in self.repository.get_categories()}
        if not isinstance(category_id, str) or category_id not in known:
            raise ValidationError(f'Unknown category {category_id!r}.')

        path = f'{category_id}/{self._timestamp()}-{secure_filename(file.filename) or "upload"}'
        result = self.storage.upload(path, file.read(), content_type=file.mimetype)
        self._invalidate()
        logger.info('Uploaded product image %s', path)
        return result

    def delete_product_image(self, path):
        path = (path or '').strip()
        if not path or path.startswith('/') or '..' in path.split('/'):
            raise ValidationError(f'Invalid storage path {path!r}.')
        if path.startswith(PROTECTED_PREFIXES):
            raise ValidationError('Metadata documents cannot be deleted here.')
        removed = self.storage.remove([path])
        if not removed:
            raise NotFoundError(f'Object {path!r} not found.')
        self._invalidate()
        logger.info('Deleted product image %s', path)

    # carousel

    def upsert_carousel_slide(self, slide_data, file=None):
        try:
            data = slide_schema.load(slide_data or {}, partial=True)
        except SchemaError as exc:
            raise ValidationError(f'Invalid slide data: {exc.messages}') from exc

        slides, version = self.repository.load_carousel_slides()

        if file is not None and getattr(file, 'filename', None):
            path = f'{CAROUSEL_FOLDER}/{self._timestamp()}-{secure_filename(file.filename) or "slide"}'
            self.storage.upload(path, file.read(), content_type=file.mimetype)
            data['image'] = self.storage.public_url(path)
            logger.info('Uploaded carousel image %s', path)

        existing = next((s for s in slides if data.get('id') and s.get('id') == data['id']), None)
        if existing is not None:
            existing.update(data)
            slide = existing
        else:
            slide = dict.fromkeys(SLIDE_TEXT_FIELDS, '')
            slide.update(data)
            slide['id'] = self._timestamp()
            slide['order'] = len(slides)
            slides.append(slide)

        if not self.repository.save_carousel_slides(slides, version):
            raise UpstreamStorageError('Failed to save carousel metadata.')
        return slide

    def reorder_carousel_slides(self, ordered):
        if not isinstance(ordered, list):
            raise ValidationError('Slides must be a list.')
        try:
            slides = slides_schema.load(ordered, partial=True)
        except SchemaError as exc:
            raise ValidationError(f'Invalid slides: {exc.messages}') from exc
        for position, slide in enumerate(slides):
            slide['order'] = position

        _, version = self.repository.load_carousel_slides()
        if not self.repository.save_carousel_slides(slides, version):
            raise UpstreamStorageError('Failed to save carousel metadata.')
        return slides

    def delete_carousel_slide(self, slide_id):
        slides, version = self.repository.load_carousel_slides()
        slide = next((s for s in slides if s.get('id') == slide_id), None)
        if slide is None:
            raise NotFoundError(f'Slide {slide_id!r} not found.')

        self._remove_slide_image(slide)

        remaining = [s for s in slides if s.get('id') != slide_id]
        if not self.repository.save_carousel_slides(remaining, version):
            raise UpstreamStorageError('Failed to save carousel metadata.')

    def _remove_slide_image(self, slide):
        image = slide.get('image') or ''
        try:
            path = self.storage.path_from_public_url(image)
        except ValidationError:
            logger.warning('Slide %s image %r is not in the bucket; not deleting it',
                           slide.get('id'), image)
            return
        if not path.startswith(CAROUSEL_FOLDER + '/'):
            logger.warning('Slide %s image %s is outside %s/; not deleting it',
                           slide.get('id'), path, CAROUSEL_FOLDER)
            return
        try:
            self.storage.remove([path])
        except CatalogError as exc:
            logger.warning('Could not delete image %s from storage: %s', path, exc)
