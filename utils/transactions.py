"""
Límite transaccional de los servicios.

run_in_transaction ejecuta `work` y hace commit. Ante fallas transitorias
(OperationalError, StaleDataError, ConcurrentModification) hace rollback y
reintenta UNA vez; si vuelve a fallar se propaga un error tipado.
Los errores de negocio (HotelError) e IntegrityError se propagan tras el
rollback sin reintento: el llamador decide qué significan.
"""

from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import TRANSACTION_RETRIES
from services.errors import ConcurrentModification, HotelError, PersistenceFailure
from utils.logging_utils import log_warning

T = TypeVar("T")


def run_in_transaction(db: Session, work: Callable[[], T], area: str = "db", retries: int = TRANSACTION_RETRIES) -> T:
    attempt = 0
    while True:
        try:
            result = work()
            db.commit()
            return result
        except (StaleDataError, ConcurrentModification) as exc:
            db.rollback()
            if attempt >= retries:
                if isinstance(exc, ConcurrentModification):
                    raise
                raise ConcurrentModification("El registro fue modificado por otra operación") from exc
            attempt += 1
            log_warning(area, "sistema", "Reintento por modificación concurrente", str(exc))
        except IntegrityError:
            db.rollback()
            raise
        except HotelError:
            db.rollback()
            raise
        except OperationalError as exc:
            db.rollback()
            if attempt >= retries:
                raise PersistenceFailure("No se pudo persistir la operación", cause=str(exc.orig)) from exc
            attempt += 1
            log_warning(area, "sistema", "Reintento por falla de persistencia", str(exc.orig))
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceFailure("Error de base de datos", cause=str(exc)) from exc
