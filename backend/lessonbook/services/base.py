# backend/lessonbook/services/base.py
"""
Base Service Pattern

Every service owns one SQLAlchemy session and a clock. Writes happen inside
``transaction()``, which is the only place a commit is issued; repositories
underneath only flush. Public operations are wrapped in
``measure_operation`` so their latency and outcome reach Prometheus.
"""

from contextlib import contextmanager
from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException, ServiceException
from ..core.timezone_utils import utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics

F = TypeVar("F", bound=Callable[..., Any])

Clock = Callable[[], datetime]

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """Session, clock, unit of work and instrumentation shared by all services."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        """
        Args:
            db: Database session
            clock: Returns the current aware UTC time; injectable for tests
        """
        self.db = db
        self.clock: Clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return self.clock()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        One atomic unit of work.

        Commits on success. Any exception rolls back everything written
        inside the block; store failures surface as ServiceException, domain
        errors propagate unchanged.

        Usage:
            with self.transaction():
                self.db.add(entity)
        """
        try:
            yield self.db
            self.db.commit()
        except (SQLAlchemyError, RepositoryException) as e:
            self.logger.error("Rolling back after store failure: %s", e)
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {e}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Record duration and outcome of a service call.

        Usage:
            @BaseService.measure_operation("book_slot")
            def book(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                started = time.perf_counter()
                error_type = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            "Slow operation: %s took %.2fs", operation_name, elapsed
                        )
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a completed state change with structured context."""
        self.logger.info("Operation: %s", operation, extra={"operation": operation, **context})
