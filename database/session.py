"""
Unit-of-work helpers: one transaction per use case, committed or rolled back
at the use-case boundary.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import BaseCustomException, TransactionFailure

logger = logging.getLogger(__name__)


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back everything on any failure.

    Domain errors propagate unchanged; storage errors surface as
    TransactionFailure.
    """
    try:
        yield db
        db.commit()
    except BaseCustomException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {str(e)}")
        raise TransactionFailure(details={"reason": e.__class__.__name__}) from e
    except Exception:
        db.rollback()
        raise


@contextmanager
def savepoint(db: Session) -> Iterator[Session]:
    """Nested transaction whose failure only undoes its own writes."""
    nested = db.begin_nested()
    try:
        yield db
        nested.commit()
    except Exception:
        nested.rollback()
        raise
