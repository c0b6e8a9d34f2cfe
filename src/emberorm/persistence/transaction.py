"""
Transaction boundary for a single session.
"""

from __future__ import annotations

import enum
from contextlib import contextmanager
from typing import Generator

from ..adapters.base import DatabaseAdapter
from ..utils import get_logger


class TransactionError(RuntimeError):
    pass


class TransactionStatus(str, enum.Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionManager:
    """
    Drives begin/commit/rollback on the adapter and tracks the resulting status.

    Nested transactions are not supported: ``begin`` while active is an error.
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self.adapter = adapter
        self.status = TransactionStatus.INACTIVE
        self.logger = get_logger("persistence.transaction")

    @property
    def is_active(self) -> bool:
        return self.status is TransactionStatus.ACTIVE

    def begin(self) -> None:
        if self.is_active:
            raise TransactionError("Transaction already active.")
        self.adapter.begin()
        self.status = TransactionStatus.ACTIVE
        self.logger.debug("Transaction started")

    def commit(self) -> None:
        if not self.is_active:
            raise TransactionError("No active transaction to commit.")
        self.adapter.commit()
        self.status = TransactionStatus.COMMITTED
        self.logger.debug("Transaction committed")

    def rollback(self) -> None:
        if not self.is_active:
            raise TransactionError("No active transaction to roll back.")
        try:
            self.adapter.rollback()
        finally:
            self.status = TransactionStatus.ROLLED_BACK
        self.logger.debug("Transaction rolled back")

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        self.begin()
        try:
            yield
        except Exception:
            self.rollback()
            raise
        else:
            self.commit()
