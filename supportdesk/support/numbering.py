from __future__ import annotations

import logging
import secrets
import string
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.db.models import TicketSequenceTable, TicketTable

from .errors import CodeGenerationExhaustedError

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
TICKET_SEQUENCE = "ticket_number"


def random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


class TicketNumberAllocator:
    """Allocate ticket numbers and public access codes inside a ticket transaction.

    Numbers come from a per-tenant counter row locked for the duration of the
    caller's transaction; the unique constraint on ``tickets.ticket_number``
    catches the remaining first-use race and the caller retries.
    """

    def __init__(
        self,
        *,
        prefix: str = "TKT",
        width: int = 6,
        code_length: int = 10,
        max_code_attempts: int = 10,
        code_factory: Callable[[int], str] | None = None,
    ) -> None:
        if code_length < 4:
            raise ValueError("code_length must be at least 4")
        if max_code_attempts < 1:
            raise ValueError("max_code_attempts must be positive")
        self._prefix = prefix
        self._width = width
        self._code_length = code_length
        self._max_code_attempts = max_code_attempts
        self._code_factory = code_factory or random_code

    def format_number(self, value: int) -> str:
        return f"{self._prefix}{value:0{self._width}d}"

    async def next_ticket_number(self, session: AsyncSession) -> str:
        result = await session.execute(
            select(TicketSequenceTable)
            .where(TicketSequenceTable.name == TICKET_SEQUENCE)
            .with_for_update()
        )
        sequence = result.scalar_one_or_none()
        if sequence is None:
            existing = await session.scalar(select(func.count()).select_from(TicketTable))
            sequence = TicketSequenceTable(name=TICKET_SEQUENCE, value=int(existing or 0))
            session.add(sequence)
        sequence.value += 1
        await session.flush()
        return self.format_number(sequence.value)

    async def next_unique_code(self, session: AsyncSession) -> str:
        for attempt in range(1, self._max_code_attempts + 1):
            code = normalize_code(self._code_factory(self._code_length))
            taken = await session.scalar(
                select(TicketTable.id).where(TicketTable.unique_code == code).limit(1)
            )
            if taken is None:
                return code
            logger.warning("Unique code collision on attempt %s", attempt)
        raise CodeGenerationExhaustedError(
            f"Could not generate a unique ticket code after {self._max_code_attempts} attempts"
        )
