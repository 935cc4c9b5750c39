"""
BaseService -- abstract base for settlement services.

Responsibility:
    Common constructor contract for every service that mutates settlement
    state.  A service receives a SQLAlchemy ``Session`` and an injected
    ``Clock``; each public operation opens its own ``UnitOfWork`` on that
    session, so the operation (not the calling layer) owns commit and
    rollback.

Architecture position:
    Kernel > Services.  Module services extend this class.

Failure modes:
    - Calling a service operation while the caller holds uncommitted work on
      the same session folds that work into the operation's transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from settlement_kernel.db.base import Base
from settlement_kernel.db.unit_of_work import UnitOfWork
from settlement_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for settlement services.

    Guarantees:
        - ``self.session`` and ``self.clock`` are set for subclass use.
        - ``unit_of_work(name)`` returns a fresh transaction scope.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def unit_of_work(self, operation: str) -> UnitOfWork:
        return UnitOfWork(self.session, operation)
