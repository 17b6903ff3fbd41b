"""Submission journal for audit-plan wizard submissions.

Each backend write issued while submitting a plan (attach a department,
map a criterion, add a team member, post a milestone, ...) is recorded as
one SubmissionStep. Failed steps can be re-sent later without repeating
the ones that already succeeded.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ams.core.database import Base


class SubmissionPhase(enum.StrEnum):
    """Ordered phases of a plan submission after the audit exists."""

    TEMPLATES = "templates"
    DEPARTMENTS = "departments"
    SENSITIVE_FLAGS = "sensitive_flags"
    CRITERIA = "criteria"
    TEAM = "team"
    SCHEDULE = "schedule"


class StepStatus(enum.StrEnum):
    """Lifecycle of a single journaled write."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"


class SubmissionStep(Base):
    """One backend write belonging to a plan submission."""

    __tablename__ = "submission_steps"
    __table_args__ = (
        UniqueConstraint("submission_id", "phase", "item_key", name="uq_submission_steps_item"),
        Index("ix_submission_steps_submission_id", "submission_id"),
        Index("ix_submission_steps_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    audit_id: Mapped[str] = mapped_column(String(64), nullable=False)
    phase: Mapped[SubmissionPhase] = mapped_column(
        Enum(SubmissionPhase, values_callable=lambda e: [x.value for x in e]), nullable=False
    )
    item_key: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[StepStatus] = mapped_column(
        Enum(StepStatus, values_callable=lambda e: [x.value for x in e]),
        default=StepStatus.PENDING,
        nullable=False,
    )
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<SubmissionStep(submission={self.submission_id}, phase={self.phase}, "
            f"item={self.item_key}, status={self.status})>"
        )
