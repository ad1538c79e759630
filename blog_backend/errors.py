"""
Error kinds raised inside the service layer.

Services raise these freely; the public service functions are wrapped with
``opaque`` so that callers only ever see a neutral value (``None``,
``False`` or an empty list).  Keeping the outcome binary means a caller
cannot tell "forbidden" apart from "not found".
"""
import functools
import logging

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class BlogError(Exception):
    """Base class for every failure the service layer raises on purpose."""


class ValidationError(BlogError):
    """A required field is missing or empty."""


class AuthorizationError(BlogError):
    def __init__(self, required, actual) -> None:
        super().__init__(f"role required: {required}, actual role: {actual}")
        self.required = required
        self.actual = actual


class NotFoundError(BlogError):
    """A referenced post or user does not exist."""


class StorageError(BlogError):
    """The document store or the credential store failed or timed out."""


def opaque(default=None):
    """
    Absorb service failures into *default*.

    *default* may be a plain value or a zero-argument callable (e.g.
    ``list``) producing a fresh value per call.  Only ``BlogError`` and
    storage driver errors are absorbed; programming errors propagate.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except (ValidationError, AuthorizationError, NotFoundError) as exc:
                logger.info("%s did not succeed: %s", func.__name__, exc)
            except (StorageError, SQLAlchemyError, RedisError, TimeoutError) as exc:
                logger.error("%s failed on storage: %s", func.__name__, exc)
            return default() if callable(default) else default

        return wrapper

    return decorator
