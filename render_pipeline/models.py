"""SQLAlchemy 2.0 ORM models.

This module contains the SQLAlchemy models for the render pipeline.
All models use the Mapped[type] annotation pattern required by SQLAlchemy 2.0.

Models:
    Job: Render job tracked through PENDING → PROCESSING → DONE/FAILED
    Asset: Uploaded media asset (owned by the asset service, read-only here)
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates

from render_pipeline.exceptions import InvalidStateTransitionError


def utcnow() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class JobStatus(enum.Enum):
    """Render job state machine.

    Flow:
        PENDING → PROCESSING → DONE
                             → FAILED

    PENDING is set by the producer. PROCESSING may be re-entered when a
    message is redelivered after a worker crashed before acknowledging it.
    DONE and FAILED are terminal.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    FAILED = "FAILED"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.DONE, JobStatus.FAILED})


class AssetType(enum.Enum):
    """Kind of media stored for an asset."""

    VIDEO = "VIDEO"
    IMAGE = "IMAGE"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Asset(Base):
    """Media asset uploaded to a project.

    Assets are created by the upload service. The render producer only reads
    them to check that the asset belongs to the project and to resolve the
    object key (s3_path) placed in the render message.

    Attributes:
        id: Asset identifier (UUID string).
        project_id: Owning project identifier.
        filename: Original upload filename.
        mime: Content type reported at upload.
        size: Size in bytes.
        type: VIDEO or IMAGE.
        s3_path: Object key, e.g. "projects/<project_id>/assets/<uuid>.mp4".
    """

    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[AssetType] = mapped_column(
        Enum(
            AssetType,
            native_enum=True,
            name="assettype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    s3_path: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Asset(id={self.id!s:.8}, project_id={self.project_id!r}, type={self.type.value!r})>"


class Job(Base):
    """Render job with a four-status state machine.

    A Job is created PENDING by the producer, moved to PROCESSING by the
    worker before any external I/O, and finishes DONE (with output_url) or
    FAILED (with error). Exactly one of output_url/error is set on a terminal
    job, never both.

    Attributes:
        id: UUID primary key, assigned at creation.
        project_id: Project the render belongs to.
        asset_id: Asset being rendered.
        status: JobStatus (indexed).
        attempts: Deliveries that reached PROCESSING. Never decreases.
        output_url: Public URL of the rendered file (DONE only).
        error: Human-readable failure diagnostic (FAILED only).
        created_at: Creation timestamp (UTC).
        updated_at: Last change timestamp (UTC, auto-updated).
    """

    __tablename__ = "jobs"

    # Only transitions listed here are allowed, enforced by @validates
    VALID_TRANSITIONS = {
        JobStatus.PENDING: [JobStatus.PROCESSING],
        JobStatus.PROCESSING: [JobStatus.PROCESSING, JobStatus.DONE, JobStatus.FAILED],
        JobStatus.DONE: [],  # Terminal
        JobStatus.FAILED: [],  # Terminal
    }

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    project_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    asset_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # Stored with the upper-case enum values (PENDING, PROCESSING, ...)
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            native_enum=True,
            name="jobstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    output_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        CheckConstraint("attempts >= 0", name="ck_jobs_attempts_non_negative"),
        CheckConstraint(
            "NOT (output_url IS NOT NULL AND error IS NOT NULL)",
            name="ck_jobs_output_url_error_exclusive",
        ),
        Index("ix_jobs_project_id_status", "project_id", "status"),
    )

    @validates("status")
    def validate_status_change(self, key: str, value: JobStatus) -> JobStatus:
        """Validate status transition before it reaches the database.

        Raises:
            InvalidStateTransitionError: If the transition is not listed in
                VALID_TRANSITIONS.

        Note:
            Validation is skipped on creation (status is None).
        """
        if self.status is None:
            return value

        allowed_transitions = self.VALID_TRANSITIONS.get(self.status, [])
        if value not in allowed_transitions:
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.status.value} → {value.value}",
                from_status=self.status,
                to_status=value,
            )

        return value

    @classmethod
    def statuses_allowing(cls, target: JobStatus) -> list[JobStatus]:
        """List the statuses from which a transition to target is valid."""
        return [status for status, targets in cls.VALID_TRANSITIONS.items() if target in targets]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Job(id={self.id!s:.8}, project_id={self.project_id!r}, "
            f"status={self.status.value!r}, attempts={self.attempts})>"
        )
