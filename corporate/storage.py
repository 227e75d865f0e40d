"""Thin client for the object-storage REST API the site keeps its media in.

Only the four calls the catalog needs are wrapped (upload, download, list by
prefix, remove) plus the public-URL helpers and the existence probe used to
double-check what the listing returns.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote, unquote, urlparse

import requests

from corporate.errors import (
    ObjectNotFound,
    StorageUnavailableError,
    UpstreamStorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100
# Statuses some CDNs answer HEAD with even though GET works.
HEAD_REJECTED_STATUSES = (403, 405, 501)


class StorageClient:
    """Bucket-scoped wrapper around the storage service's HTTP API."""

    def __init__(self, base_url: str, key: str, bucket: str,
                 session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = (base_url or '').rstrip('/')
        self.bucket = bucket
        self.timeout = timeout
        self.session = session or requests.Session()
        if key:
            self.session.headers.update({
                'apikey': key,
                'Authorization': f'Bearer {key}',
            })

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.bucket)

    @property
    def public_prefix(self) -> str:
        return f'{self.base_url}/storage/v1/object/public/{self.bucket}/'

    def public_url(self, path: str) -> str:
        return self.public_prefix + quote(path.lstrip('/'))

    def path_from_public_url(self, url: str) -> str:
        """Strip the bucket's public prefix from *url*.

        Anything that is not a public URL of this bucket is rejected rather
        than guessed at.
        """
        marker = f'/storage/v1/object/public/{self.bucket}/'
        parsed = urlparse(url or '')
        if not parsed.scheme or marker not in parsed.path:
            raise ValidationError('Image URL does not belong to this bucket.', url=url)
        if f'{parsed.scheme}://{parsed.netloc}' != self.base_url:
            raise ValidationError('Image URL does not belong to this bucket.', url=url)
        path = unquote(parsed.path.split(marker, 1)[1])
        if not path:
            raise ValidationError('Image URL has no object path.', url=url)
        return path

    def _object_url(self, path: str) -> str:
        return f'{self.base_url}/storage/v1/object/{self.bucket}/{quote(path.lstrip("/"))}'

    def _request(self, method: str, url: str, operation: str, path: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning('Storage %s of %r unreachable: %s', operation, path, exc)
            raise StorageUnavailableError(f'Storage unreachable during {operation}.',
                                          path=path) from exc
        except requests.RequestException as exc:
            logger.warning('Storage %s of %r failed: %s', operation, path, exc)
            raise UpstreamStorageError(f'Storage {operation} failed.', path=path) from exc

        if response.ok:
            return response
        if _is_not_found(response):
            raise ObjectNotFound(f'Object {path!r} not found.', path=path)
        logger.warning('Storage %s of %r answered %s: %s', operation, path,
                       response.status_code, response.text[:200])
        raise UpstreamStorageError(f'Storage {operation} failed with status {response.status_code}.',
                                   path=path, status=response.status_code)

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None,
               upsert: bool = False) -> Dict[str, Any]:
        headers = {
            'Content-Type': content_type or 'application/octet-stream',
            'x-upsert': 'true' if upsert else 'false',
        }
        response = self._request('POST', self._object_url(path), 'upload', path,
                                 data=data, headers=headers)
        result = _json_or_empty(response)
        result.setdefault('path', path)
        result['publicUrl'] = self.public_url(path)
        return result

    def download(self, path: str) -> bytes:
        return self._request('GET', self._object_url(path), 'download', path).content

    def list(self, prefix: str, limit: int = MAX_LIST_LIMIT, offset: int = 0,
             sort_by: str = 'name', order: str = 'asc') -> List[Dict[str, Any]]:
        body = {
            'prefix': prefix,
            'limit': max(1, min(int(limit), MAX_LIST_LIMIT)),
            'offset': offset,
            'sortBy': {'column': sort_by, 'order': order},
        }
        url = f'{self.base_url}/storage/v1/object/list/{self.bucket}'
        entries = self._request('POST', url, 'list', prefix, json=body).json()
        return entries if isinstance(entries, list) else []

    def remove(self, paths: Iterable[str]) -> List[Dict[str, Any]]:
        """Delete *paths*; returns the entries the service actually removed."""
        paths = list(paths)
        url = f'{self.base_url}/storage/v1/object/{self.bucket}'
        removed = self._request('DELETE', url, 'remove', ','.join(paths),
                                json={'prefixes': paths}).json()
        return removed if isinstance(removed, list) else []


class ExistenceProber:
    """Checks that public URLs are really fetchable.

    A HEAD request is tried first; when the server rejects the method a
    streamed GET is issued instead. Timeouts and transport errors count as
    "does not exist".
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 1.5,
                 max_workers: int = 8):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_workers = max_workers

    def exists(self, url: str) -> bool:
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            if response.status_code in HEAD_REJECTED_STATUSES:
                response = self.session.get(url, timeout=self.timeout, stream=True)
                response.close()
            return response.ok
        except requests.RequestException as exc:
            logger.debug('Existence probe for %s failed: %s', url, exc)
            return False

    def filter_existing(self, urls: Iterable[str]) -> List[str]:
        urls = list(urls)
        if not urls:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(urls))) as pool:
            found = list(pool.map(self.exists, urls))
        return [url for url, ok in zip(urls, found) if ok]


def _is_not_found(response: requests.Response) -> bool:
    if response.status_code == 404:
        return True
    if response.status_code == 400:
        # The service reports missing objects as 400 with a 404 body.
        body = _json_or_empty(response)
        return str(body.get('statusCode')) == '404' or body.get('error') == 'not_found'
    return False


def _json_or_empty(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
