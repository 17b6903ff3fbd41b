"""SQLAlchemy models for the AMS planning service."""

from ams.core.models.submission import StepStatus, SubmissionPhase, SubmissionStep

__all__ = [
    "StepStatus",
    "SubmissionPhase",
    "SubmissionStep",
]
