"""Product catalog rebuilt from the bucket's category folders.

Folder listings are not always trustworthy: row-level policies can hide
objects, and fresh uploads may not be listable yet. Each category therefore
goes through an ordered chain of strategies until one yields products:

1. list the folder (optionally probing every listed object),
2. probe the conventional ``1.jpeg`` .. ``8.jpeg`` filenames,
3. use a static set of placeholder images.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence

from corporate.errors import StorageUnavailableError
from corporate.models import make_product

logger = logging.getLogger(__name__)

PLACEHOLDER_NAMES = {'.emptyFolderPlaceholder'}
DIRECTORY_MIMETYPES = {'application/x-directory', 'inode/directory'}
KNOWN_FILENAMES = tuple(f'{n}.jpeg' for n in range(1, 9))

STOCK_IMAGES = (
    'https://images.unsplash.com/photo-1505575972945-530f3fdde9f0?q=80&w=1200&auto=format&fit=crop',
    'https://images.unsplash.com/photo-1519681393784-d120267933ba?q=80&w=1200&auto=format&fit=crop',
    'https://images.unsplash.com/photo-1495501468073-4f1d9cfe4c0b?q=80&w=1200&auto=format&fit=crop',
    'https://images.unsplash.com/photo-1498579150354-977475b7ea0b?q=80&w=1200&auto=format&fit=crop',
)

Strategy = Callable[[dict], List[dict]]


class CatalogCache:
    """Assembled catalog kept in memory for ``ttl`` seconds."""

    def __init__(self, ttl: float = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self.data: Optional[dict] = None
        self.timestamp = 0.0
        self.generation = 0
        self._lock = threading.Lock()

    def get(self) -> Optional[dict]:
        if self.data is not None and self.clock() - self.timestamp < self.ttl:
            return self.data
        return None

    def set(self, data: dict, generation: Optional[int] = None) -> bool:
        """Store *data* unless the cache was invalidated since *generation*."""
        with self._lock:
            if generation is not None and generation != self.generation:
                return False
            self.data = data
            self.timestamp = self.clock()
            return True

    def invalidate(self) -> None:
        with self._lock:
            self.generation += 1
            self.data = None
            self.timestamp = 0.0


def is_product_entry(entry: dict) -> bool:
    name = entry.get('name') or ''
    if not name or name in PLACEHOLDER_NAMES or name.endswith('.json'):
        return False
    metadata = entry.get('metadata')
    if metadata is None:
        # folders come back without metadata
        return False
    return (metadata.get('mimetype') or '') not in DIRECTORY_MIMETYPES


def from_listing(storage, prober, category: dict, page_size: int = 100, verify: bool = True) -> List[dict]:
    entries = [e for e in storage.list(category['id'], limit=page_size) if is_product_entry(e)]
    urls = [storage.public_url(f"{category['id']}/{e['name']}") for e in entries]
    if verify and prober is not None:
        reachable = set(prober.filter_existing(urls))
        dropped = len(urls) - len(reachable)
        if dropped:
            logger.info('Category %s: %d listed object(s) not fetchable', category['id'], dropped)
    else:
        reachable = set(urls)
    survivors = [(e, url) for e, url in zip(entries, urls) if url in reachable]
    return [make_product(category, i, e.get('id') or e['name'], url)
            for i, (e, url) in enumerate(survivors)]


def from_known_filenames(storage, prober, category: dict,
                         filenames: Sequence[str] = KNOWN_FILENAMES) -> List[dict]:
    candidates = {storage.public_url(f"{category['id']}/{name}"): name for name in filenames}
    found = prober.filter_existing(candidates)
    return [make_product(category, i, candidates[url], url) for i, url in enumerate(found)]


def from_static_images(category: dict, images: Optional[Dict[str, Sequence[str]]] = None) -> List[dict]:
    urls = (images or {}).get(category['id']) or STOCK_IMAGES
    return [make_product(category, i, f'fallback-{i + 1}', url) for i, url in enumerate(urls)]


class ProductListingResolver:
    """Resolves every category concurrently, keeping category order."""

    def __init__(self, strategies: Sequence[Strategy], max_workers: int = 8):
        self.strategies = list(strategies)
        self.max_workers = max_workers

    @classmethod
    def for_storage(cls, storage, prober, page_size=100, verify=True,
                    fallback_images=None, max_workers=8):
        return cls([
            partial(from_listing, storage, prober, page_size=page_size, verify=verify),
            partial(from_known_filenames, storage, prober),
            partial(from_static_images, images=fallback_images),
        ], max_workers=max_workers)

    def resolve_category(self, category: dict):
        """Return ``(products, unreachable)`` for one category.

        A failing strategy counts as an empty result; ``unreachable`` is set
        when one of them could not reach storage at all.
        """
        unreachable = False
        for strategy in self.strategies:
            try:
                products = strategy(category)
            except StorageUnavailableError as exc:
                logger.warning('Category %s: storage unreachable: %s', category.get('id'), exc)
                unreachable = True
                continue
            except Exception:
                logger.exception('Category %s: %s failed', category.get('id'), _name(strategy))
                continue
            if products:
                return products, unreachable
        return [], unreachable

    def resolve(self, categories: Sequence[dict]) -> List[dict]:
        if not categories:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(categories))) as pool:
            results = list(pool.map(self.resolve_category, categories))
        if all(unreachable for _, unreachable in results):
            raise StorageUnavailableError('Storage unreachable for every category.')
        products = []
        for category_products, _ in results:
            products.extend(category_products)
        return products


class Catalog:
    """Cached ``{products, categories}`` view served by ``GET /products``."""

    def __init__(self, repository, resolver: ProductListingResolver, cache: CatalogCache):
        self.repository = repository
        self.resolver = resolver
        self.cache = cache

    def get_catalog(self) -> dict:
        cached = self.cache.get()
        if cached is not None:
            return dict(cached, cached=True)
        generation = self.cache.generation
        categories = self.repository.get_categories()
        products = self.resolver.resolve(categories)
        catalog = {'products': products, 'categories': categories}
        if not self.cache.set(catalog, generation):
            logger.info('Catalog changed while it was being built; not caching it')
        return catalog


def _name(strategy) -> str:
    func = getattr(strategy, 'func', strategy)
    return getattr(func, '__name__', repr(func))
