"""Error taxonomy shared by the storage layer, the mutators and the routes."""


class CatalogError(Exception):
    """Base error; ``status`` is the HTTP status the routes answer with."""

    status = 500
    message_key = 'error.internal'

    def __init__(self, message=None, **context):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context


class ValidationError(CatalogError):
    status = 400
    message_key = 'error.validation'


class ConflictError(CatalogError):
    status = 400
    message_key = 'error.conflict'


class NotFoundError(CatalogError):
    status = 404
    message_key = 'error.not_found'


class UnauthorizedError(CatalogError):
    status = 401
    message_key = 'error.unauthorized'


class UpstreamStorageError(CatalogError):
    status = 500
    message_key = 'error.storage'


class ObjectNotFound(UpstreamStorageError):
    """The storage service answered 404 for an object."""


class StorageUnavailableError(UpstreamStorageError):
    """The storage service could not be reached at all."""
