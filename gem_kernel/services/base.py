"""
BaseService -- common constructor for kernel services.

Every service receives a SQLAlchemy ``Session`` from its caller and uses
``session.flush()`` only.  The caller (``run_in_transaction``,
``session_scope`` or a test) owns commit and rollback, which is what lets
allocation and the INSERT of the business record share one transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for session-bound services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
