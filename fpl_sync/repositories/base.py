"""
Base repository class for data access layer.

The repository pattern provides:
1. Separation of data access logic from sync logic
2. Single place for query logic (easier to maintain)
3. Easier testing (can run against in-memory SQLite)
4. Consistent error translation: every SQLAlchemy failure surfaces as a
   PersistenceError carrying the operation name and the original cause

Example:
    class TeamRepository(BaseRepository[Team]):
        async def count(self) -> int:
            async with self.operation("count"):
                result = await self.session.execute(select(func.count()).select_from(Team))
                return result.scalar_one()
"""
import logging
from abc import ABC
from contextlib import asynccontextmanager
from typing import AsyncIterator, Generic, Type, TypeVar

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from fpl_sync.core.errors import PersistenceError, PersistenceErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_error(error: BaseException) -> PersistenceErrorCode:
    if isinstance(error, IntegrityError):
        return PersistenceErrorCode.CONSTRAINT_VIOLATION
    if isinstance(error, (InterfaceError, DisconnectionError, OSError)):
        return PersistenceErrorCode.CONNECTION_ERROR
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return PersistenceErrorCode.CONNECTION_ERROR
    return PersistenceErrorCode.OPERATION_ERROR


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        session: The async database session
    """

    def __init__(self, model_type: Type[T], session: AsyncSession):
        """
        Initialize the repository.

        Args:
            model_type: The SQLAlchemy model class
            session: The async database session
        """
        self.model_type = model_type
        self.session = session

    @property
    def table_name(self) -> str:
        return self.model_type.__tablename__

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    # ========================================================================
    # Error translation
    # ========================================================================

    @asynccontextmanager
    async def operation(self, name: str) -> AsyncIterator[None]:
        """
        Run a block as a named repository operation.

        Any SQLAlchemy or connection failure rolls the session back and is
        re-raised as PersistenceError. The handled insert-or-ignore conflicts
        never reach this point because the database resolves them.
        """
        try:
            yield
        except PersistenceError:
            await self.rollback()
            raise
        except (SQLAlchemyError, OSError) as e:
            await self.rollback()
            code = classify_error(e)
            logger.error(f"{self.table_name}.{name} failed ({code.value}): {e}")
            raise PersistenceError(
                f"{self.table_name}.{name} failed: {e}",
                operation=f"{self.table_name}.{name}",
                code=code,
                cause=e,
            ) from e

    # ========================================================================
    # Transaction Management
    # ========================================================================

    async def commit(self) -> None:
        """Commit the current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        try:
            await self.session.rollback()
        except (SQLAlchemyError, OSError) as e:
            # The original failure is what the caller needs to see
            logger.warning(f"Rollback on {self.table_name} failed: {e}")
