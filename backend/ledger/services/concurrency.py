# Overview: Transaction boundary and row locking shared by every ledger operation.

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..validation import InternalLedgerError, LedgerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Callers lock InventoryItem rows in ascending id order.
    """
    return query.with_for_update()


def run_atomic(func: Callable[[], T], *, operation: str) -> T:
    """
    Execute func as one transaction: commit on success, roll back on any failure.

    Ledger errors propagate unchanged. Database errors (including optimistic
    version conflicts) are logged and re-raised as InternalLedgerError, the
    only error a caller may safely retry. Nothing is retried here.
    """
    try:
        result = func()
        db.session.commit()
    except LedgerError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Ledger operation %s failed in the database", operation)
        raise InternalLedgerError() from exc
    except Exception:
        db.session.rollback()
        raise
    return result
