"""
Module: settlement_kernel.db.unit_of_work
Responsibility: Transaction boundary owned by a single state-machine
    operation (statement creation, PDC binding, OTP request/verification,
    payment reconciliation).
Architecture position: Kernel > DB.  Imported by module services.

Invariants enforced:
    - Commit on clean exit, rollback on exception; the exception is always
      re-raised.
    - Callbacks registered with ``after_commit`` run only after a successful
      commit.  They are discarded on rollback, so a rolled-back operation
      never produces a notification.
    - A failing callback is logged and does not undo committed state.

Usage:
    with UnitOfWork(session, "verify_otp") as uow:
        ...mutate rows...
        uow.after_commit(lambda: dispatcher.dispatch(notification))
"""

from typing import Callable

from sqlalchemy.orm import Session

from settlement_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


class UnitOfWork:
    """Commit-or-rollback scope with post-commit callbacks."""

    def __init__(self, session: Session, operation: str):
        self.session = session
        self.operation = operation
        self._after_commit: list[Callable[[], None]] = []
        self.committed = False

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Queue ``callback`` to run once the transaction has committed."""
        self._after_commit.append(callback)

    def __enter__(self) -> "UnitOfWork":
        logger.debug("unit_of_work_started", extra={"operation": self.operation})
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self._after_commit.clear()
            self.session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={"operation": self.operation},
                exc_info=(exc_type, exc, tb),
            )
            return False

        try:
            self.session.commit()
        except Exception:
            self._after_commit.clear()
            self.session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={"operation": self.operation},
                exc_info=True,
            )
            raise

        self.committed = True
        logger.debug("unit_of_work_committed", extra={"operation": self.operation})
        self._run_after_commit()
        return False

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.error(
                    "post_commit_callback_failed",
                    extra={"operation": self.operation},
                    exc_info=True,
                )
