"""
BaseService -- abstract base for all payroll services.

Responsibility:
    Common constructor and session contract for every service that writes
    payroll state.  Services receive a SQLAlchemy ``Session`` from the
    caller and persist through ``session.flush()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush; the caller (``session_scope()`` or a test fixture)
      commits.  A ledger append and the status change it records therefore
      land in one transaction.
    - A failed flush leaves the session unusable, so it is rolled back
      where one is caught: on a ledger concurrency conflict, and when a
      calculation run crashes and must still record its failure.

Failure modes:
    - A subclass that commits on its own breaks the atomicity of
      multi-step operations such as a calculation run.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from payroll_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)

# Actor recorded on rows written by automated steps (runs, detection).
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for payroll services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and flushes changes within the
        caller's transaction.

    Non-goals:
        - Does NOT manage commit boundaries.
        - Does NOT provide read-model queries; those live in
          ``payroll_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
