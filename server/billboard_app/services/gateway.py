"""
Persistence gateway helpers.

``atomic()`` wraps a unit of work in one database transaction and
normalizes infrastructure failures into ``ServiceUnavailable`` so callers
never see driver-specific exceptions.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ..errors import ServiceUnavailable, WorkflowError
from ..extensions import db

logger = logging.getLogger(__name__)


def _rollback():
    try:
        db.session.rollback()
    except DBAPIError:
        logger.error("Rollback failed", exc_info=True)


@contextmanager
def gateway_errors(operation: str = "query"):
    """Translate store failures raised inside the block (no commit/rollback)."""
    try:
        yield
    except (WorkflowError, IntegrityError):
        raise
    except (OperationalError, PoolTimeoutError, DBAPIError) as exc:
        logger.error("Persistence gateway failure during %s", operation, exc_info=True)
        raise ServiceUnavailable() from exc


@contextmanager
def atomic(operation: str = "transaction"):
    """
    Run the block as a single transaction.

    Commits when the block finishes, rolls back on any exception. Integrity
    errors and workflow errors propagate unchanged; connection, timeout and
    other driver failures surface as ``ServiceUnavailable``.
    """
    try:
        yield db.session
        db.session.commit()
    except (WorkflowError, IntegrityError):
        _rollback()
        raise
    except (OperationalError, PoolTimeoutError, DBAPIError) as exc:
        _rollback()
        logger.error("Persistence gateway failure during %s", operation, exc_info=True)
        raise ServiceUnavailable() from exc
    except Exception:
        _rollback()
        raise
