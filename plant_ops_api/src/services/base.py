from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.services.errors import ConflictError

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def conflict_on_duplicate(
        self, message: str, details: Optional[Dict[str, Any]] = None
    ) -> AsyncIterator[None]:
        """
        Turn a unique index violation raised inside the block into ConflictError.

        Existence checks run before inserts, but two requests can pass them at
        the same time; the database index decides and the loser gets a 409.
        """
        try:
            yield
        except IntegrityError as exc:
            await self.session.rollback()
            logger.info("Insert rejected by a unique index: %s", message)
            raise ConflictError(message, details=details) from exc
