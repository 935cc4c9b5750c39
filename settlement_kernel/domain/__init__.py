"""
Pure domain layer.

Value objects and time abstraction with NO dependencies on the ORM,
the database or I/O.
"""

from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.period import BillingPeriod
from settlement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "BillingPeriod",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
