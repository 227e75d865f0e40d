"""Whole-document JSON persistence for categories and carousel slides.

The two metadata documents live in the bucket next to the images and are the
only structured state the site has. Every mutation is a read-modify-write of
the whole document; writes go through ``write_if_version`` so a store that can
do compare-and-swap rejects a stale write instead of clobbering it.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
from typing import Any, List, Optional, Tuple

from marshmallow import ValidationError as SchemaError

from corporate.errors import CatalogError, ConflictError, ObjectNotFound, UpstreamStorageError
from corporate.models import DEFAULT_CATEGORIES, categories_schema, slides_schema

logger = logging.getLogger(__name__)

CATEGORIES_PATH = '_metadata/categories.json'
CAROUSEL_PATH = '_metadata/carousel.json'


class VersionedDocumentStore:
    """A single JSON document with an opaque version tag."""

    def read(self) -> Tuple[Any, Optional[str]]:
        """Return ``(document, version)``; raises ``ObjectNotFound`` if absent."""
        raise NotImplementedError

    def write_if_version(self, document: Any, expected_version: Optional[str]) -> bool:
        """Write *document* unless the stored version moved past *expected_version*."""
        raise NotImplementedError


class BlobDocumentStore(VersionedDocumentStore):
    """Document kept as a blob in object storage.

    The storage API has no conditional write, so the expected version is not
    checked here: the last writer wins.
    """

    def __init__(self, storage, path: str):
        self.storage = storage
        self.path = path

    def read(self):
        raw = self.storage.download(self.path)
        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise UpstreamStorageError(f'{self.path} is not valid JSON.') from exc
        return document, hashlib.sha1(raw).hexdigest()

    def write_if_version(self, document, expected_version):
        payload = json.dumps(document, ensure_ascii=False).encode('utf-8')
        self.storage.upload(self.path, payload, content_type='application/json', upsert=True)
        return True


class MetadataRepository:
    """Owner of ``categories.json`` and ``carousel.json``."""

    def __init__(self, categories_store: VersionedDocumentStore,
                 carousel_store: VersionedDocumentStore, cache=None):
        self.categories_store = categories_store
        self.carousel_store = carousel_store
        self.cache = cache

    # categories

    def get_categories(self) -> List[dict]:
        """Stored categories, or the default list when they can't be read."""
        try:
            categories, _ = self.load_categories()
            return categories
        except CatalogError as exc:
            logger.warning('Falling back to default categories: %s', exc)
            return copy.deepcopy(DEFAULT_CATEGORIES)

    def load_categories(self) -> Tuple[List[dict], Optional[str]]:
        """Strict read for mutations.

        A missing document yields the defaults; any other failure is raised so
        a transient error never gets the defaults written over real data.
        """
        try:
            document, version = self.categories_store.read()
        except ObjectNotFound:
            return copy.deepcopy(DEFAULT_CATEGORIES), None
        return _load(categories_schema, document, CATEGORIES_PATH), version

    def save_categories(self, categories: List[dict], expected_version: Optional[str] = None) -> bool:
        saved = self._save(self.categories_store, categories_schema.dump(categories),
                           expected_version, CATEGORIES_PATH)
        if saved and self.cache is not None:
            self.cache.invalidate()
        return saved

    # carousel

    def get_carousel_slides(self) -> List[dict]:
        """Slides sorted by ``order``; empty when the document doesn't exist yet."""
        try:
            slides, _ = self.load_carousel_slides()
            return slides
        except CatalogError as exc:
            logger.warning('Could not read carousel slides: %s', exc)
            return []

    def load_carousel_slides(self) -> Tuple[List[dict], Optional[str]]:
        try:
            document, version = self.carousel_store.read()
        except ObjectNotFound:
            return [], None
        slides = _load(slides_schema, document, CAROUSEL_PATH, partial=True)
        return sorted(slides, key=lambda s: s.get('order', 0)), version

    def save_carousel_slides(self, slides: List[dict], expected_version: Optional[str] = None) -> bool:
        return self._save(self.carousel_store, slides_schema.dump(slides),
                          expected_version, CAROUSEL_PATH)

    def _save(self, store, document, expected_version, path) -> bool:
        try:
            written = store.write_if_version(document, expected_version)
        except CatalogError as exc:
            logger.error('Failed to save %s: %s', path, exc)
            return False
        if not written:
            raise ConflictError(f'{path} was changed by another request; reload and retry.')
        return True


def _load(schema, document, path, partial=False):
    if not isinstance(document, list):
        raise UpstreamStorageError(f'{path} does not hold a JSON array.')
    try:
        return schema.load(document, partial=partial)
    except SchemaError as exc:
        raise UpstreamStorageError(f'{path} is malformed: {exc.messages}') from exc
