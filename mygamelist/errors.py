# =========================
# ERRORS

# Failure types raised by the library layer
# =========================


class MyGameListError(Exception):
    """Base class for every failure raised by mygamelist."""


class InvalidArgument(MyGameListError):
    """A required field is missing or malformed."""


class NotFound(MyGameListError):
    """The identifier resolves neither in the store nor in the catalog."""


class AlreadyExists(MyGameListError):
    """A record with the same key is already stored."""


class StorageError(MyGameListError):
    """A read or write against the database failed."""


class CatalogError(MyGameListError):
    """The RAWG catalog request failed or returned a non-200 response."""
