from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stockledger.app.core.config import get_settings
from stockledger.app.core.errors import Conflict, InternalError, LedgerError
from stockledger.app.core.logging import get_logger

logger = get_logger("db")

engine = create_engine(get_settings().database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Unité atomique : commit si tout passe, rollback complet sinon.

    - erreurs métier (LedgerError) : rollback puis propagées telles quelles
    - IntegrityError : rollback -> Conflict (clé unique, création concurrente)
    - autre erreur SQL : rollback -> InternalError (détail uniquement en log)
    """
    try:
        yield db
        db.commit()
    except LedgerError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning("integrity error, transaction rolled back", extra={"error": str(e.orig)})
        raise Conflict("Conflicto con datos existentes, reintente la operación") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("datastore failure, transaction rolled back")
        raise InternalError() from e
    except BaseException:
        db.rollback()
        raise
