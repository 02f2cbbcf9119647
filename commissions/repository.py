"""
commissions/repository.py

Submission persistence.

SubmissionRepository is the seam between the lifecycle service and storage;
SqlSubmissionRepository implements it over a SQLAlchemy session and writes
the audit entry of each change in the same transaction.

Concurrency:
- Submission.version is the mapper's version_id_col, so every UPDATE/DELETE
  carries "AND version = <version read>". When another writer got there
  first the flush raises StaleDataError; the write is rolled back (audit
  entry included) and Conflict is raised.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from .audit import log_action, serialize_model
from .errors import Conflict
from .models import Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionFilters:
    salesperson_id: Optional[int] = None
    status: Optional[str] = None
    client_name: Optional[str] = None
    invoice_number: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class SubmissionRepository(ABC):
    """Repository interface: get by id, add new, save existing, delete, list."""

    @abstractmethod
    def get(self, submission_id: int) -> Optional[Submission]:
        ...

    @abstractmethod
    def add(self, submission: Submission, *, actor: Any = None) -> Submission:
        ...

    @abstractmethod
    def save(
        self,
        submission: Submission,
        *,
        action: str = "UPDATE",
        actor: Any = None,
        before: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        ...

    @abstractmethod
    def delete(self, submission: Submission, *, actor: Any = None) -> None:
        ...

    @abstractmethod
    def list(self, filters: Optional[SubmissionFilters] = None) -> List[Submission]:
        ...


class SqlSubmissionRepository(SubmissionRepository):
    """SQLAlchemy-backed repository. Each write commits its own transaction."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, submission_id: int) -> Optional[Submission]:
        return self.session.get(Submission, submission_id)

    def add(self, submission: Submission, *, actor: Any = None) -> Submission:
        self.session.add(submission)
        self.session.flush()
        log_action(submission, "CREATE", actor=actor, after=serialize_model(submission), session=self.session)
        self.session.commit()
        return submission

    def save(
        self,
        submission: Submission,
        *,
        action: str = "UPDATE",
        actor: Any = None,
        before: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        log_action(
            submission,
            action,
            actor=actor,
            before=before,
            after=serialize_model(submission),
            session=self.session,
        )
        self._commit(submission.id, "save")
        return submission

    def delete(self, submission: Submission, *, actor: Any = None) -> None:
        submission_id = submission.id
        before = serialize_model(submission)

        self.session.delete(submission)
        log_action(submission, "DELETE", actor=actor, before=before, entity_id=submission_id, session=self.session)
        self._commit(submission_id, "delete")

    def _commit(self, submission_id: Optional[int], operation: str):
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("conflicting %s on submission %s", operation, submission_id)
            raise Conflict(
                "The submission was changed by someone else. Reload it and try again.",
                details={"submission_id": submission_id},
            ) from exc

    def list(self, filters: Optional[SubmissionFilters] = None) -> List[Submission]:
        filters = filters or SubmissionFilters()
        stmt = select(Submission).options(joinedload(Submission.salesperson))

        if filters.salesperson_id is not None:
            stmt = stmt.where(Submission.salesperson_id == filters.salesperson_id)
        if filters.status:
            stmt = stmt.where(Submission.status == filters.status)
        if filters.client_name:
            stmt = stmt.where(func.lower(Submission.client_name).contains(filters.client_name.lower()))
        if filters.invoice_number:
            stmt = stmt.where(func.coalesce(Submission.invoice_number, "").ilike(f"%{filters.invoice_number}%"))
        if filters.start_date:
            stmt = stmt.where(Submission.document_date >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(Submission.document_date <= filters.end_date)

        stmt = stmt.order_by(Submission.created_at.desc(), Submission.id.desc())
        return list(self.session.scalars(stmt).unique())
