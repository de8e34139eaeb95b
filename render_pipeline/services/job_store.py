"""Job persistence and atomic status transitions.

The JobStore is the only writer of Job rows. Every method opens its own short
transaction through the injected session factory, so no transaction is ever
held across download, transcode or upload.

Transition Rules:
    - PENDING → PROCESSING (attempts + 1), guarded in a single UPDATE
    - PROCESSING → PROCESSING on redelivery (attempts + 1)
    - PROCESSING → DONE (output_url) | FAILED (error)
    - DONE / FAILED are terminal; a second terminal write is discarded
      (mark_done / mark_failed return None)

Any write that cannot be committed surfaces as StatusWriteFailure. Callers
never see raw SQLAlchemy errors from status writes.

Usage:
    store = JobStore(async_session_factory)
    job = await store.create_job(project_id="p1", asset_id="a1")
    job = await store.mark_processing(str(job.id))
    job = await store.mark_done(str(job.id), "https://...")
"""

import uuid

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from render_pipeline.exceptions import (
    InvalidStateTransitionError,
    JobNotFoundError,
    StatusWriteFailure,
)
from render_pipeline.models import Asset, Job, JobStatus, utcnow

log = structlog.get_logger()


def _parse_job_id(job_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(job_id)
    except (TypeError, ValueError):
        return None


async def get_asset(session: AsyncSession, asset_id: str) -> Asset | None:
    """Load an asset by id within an existing session."""
    return await session.get(Asset, asset_id)


class JobStore:
    """Async repository for Job rows.

    Args:
        session_factory: async_sessionmaker bound to the jobs database.
            Must be created with expire_on_commit=False so returned Jobs stay
            readable after their transaction closes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_job(self, project_id: str, asset_id: str) -> Job:
        """Create and commit a PENDING job.

        Returns:
            The committed Job (id assigned).

        Raises:
            SQLAlchemyError: If the insert cannot be committed.
        """
        async with self._session_factory() as session, session.begin():
            job = Job(project_id=project_id, asset_id=asset_id, status=JobStatus.PENDING)
            session.add(job)

        log.info(
            "render_job_created",
            job_id=str(job.id),
            project_id=project_id,
            asset_id=asset_id,
        )
        return job

    async def get_job(self, job_id: str | uuid.UUID) -> Job | None:
        """Load a job, or None if the id is unknown or not a UUID."""
        job_uuid = _parse_job_id(job_id)
        if job_uuid is None:
            return None
        async with self._session_factory() as session:
            return await session.get(Job, job_uuid)

    async def get_asset(self, asset_id: str) -> Asset | None:
        """Load an asset in a short read-only session."""
        async with self._session_factory() as session:
            return await get_asset(session, asset_id)

    async def set_job_status(
        self,
        job_id: str | uuid.UUID,
        status: JobStatus,
        *,
        increment_attempts: bool = False,
        output_url: str | None = None,
        error: str | None = None,
    ) -> Job:
        """Write a status transition for one job.

        The row is loaded with SELECT ... FOR UPDATE (ignored on SQLite) and
        the transition is checked by Job's @validates hook.

        Args:
            job_id: Job identifier.
            status: Target status.
            increment_attempts: Add 1 to attempts in the same transaction.
            output_url: Required for DONE, ignored otherwise.
            error: Required for FAILED, ignored otherwise.

        Returns:
            The updated Job.

        Raises:
            ValueError: If DONE lacks output_url or FAILED lacks error.
            StatusWriteFailure: If the job is missing, the transition is not
                allowed, or the commit fails.
        """
        if status is JobStatus.DONE and not output_url:
            raise ValueError("output_url is required for DONE")
        if status is JobStatus.FAILED and not error:
            raise ValueError("error is required for FAILED")

        job_uuid = _parse_job_id(job_id)
        if job_uuid is None:
            raise StatusWriteFailure(str(job_id), status, "job id is not a valid UUID")

        try:
            async with self._session_factory() as session, session.begin():
                job = await session.get(Job, job_uuid, with_for_update=True)
                if job is None:
                    raise StatusWriteFailure(str(job_id), status, "job not found")

                job.status = status
                if increment_attempts:
                    job.attempts += 1
                if status is JobStatus.DONE:
                    job.output_url = output_url
                    job.error = None
                elif status is JobStatus.FAILED:
                    job.error = error
                    job.output_url = None
        except InvalidStateTransitionError as e:
            raise StatusWriteFailure(str(job_id), status, str(e)) from e
        except SQLAlchemyError as e:
            raise StatusWriteFailure(str(job_id), status, f"{type(e).__name__}: {e}") from e

        log.info(
            "job_status_updated",
            job_id=str(job_id),
            status=status.value,
            attempts=job.attempts,
        )
        return job

    async def mark_processing(self, job_id: str | uuid.UUID) -> Job | None:
        """Move a job to PROCESSING and increment attempts atomically.

        Runs a single guarded UPDATE so the status check and the attempts
        increment cannot interleave with another writer.

        Returns:
            The updated Job, or None if the job is already terminal (the
            caller should skip the delivery).

        Raises:
            JobNotFoundError: If no job has this id.
            StatusWriteFailure: If the update cannot be committed.
        """
        job_uuid = _parse_job_id(job_id)
        if job_uuid is None:
            raise JobNotFoundError(str(job_id))

        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(Job)
                    .where(
                        Job.id == job_uuid,
                        Job.status.in_(Job.statuses_allowing(JobStatus.PROCESSING)),
                    )
                    .values(
                        status=JobStatus.PROCESSING,
                        attempts=Job.attempts + 1,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 0:
                    existing = await session.get(Job, job_uuid)
                    if existing is None:
                        raise JobNotFoundError(str(job_id))
                    log.info(
                        "job_already_terminal",
                        job_id=str(job_id),
                        status=existing.status.value,
                        attempts=existing.attempts,
                    )
                    return None

                job = await session.get(Job, job_uuid, populate_existing=True)
        except SQLAlchemyError as e:
            raise StatusWriteFailure(
                str(job_id), JobStatus.PROCESSING, f"{type(e).__name__}: {e}"
            ) from e

        log.info("job_status_updated", job_id=str(job_id), status="PROCESSING", attempts=job.attempts)
        return job

    async def _mark_terminal(
        self,
        job_id: str | uuid.UUID,
        status: JobStatus,
        *,
        output_url: str | None = None,
        error: str | None = None,
    ) -> Job | None:
        """Write DONE or FAILED only if the job is still PROCESSING.

        The first terminal write wins. A later one (an overlapping duplicate
        delivery finishing second) matches no row and is discarded.
        """
        job_uuid = _parse_job_id(job_id)
        if job_uuid is None:
            raise StatusWriteFailure(str(job_id), status, "job id is not a valid UUID")

        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    update(Job)
                    .where(
                        Job.id == job_uuid,
                        Job.status.in_(Job.statuses_allowing(status)),
                    )
                    .values(
                        status=status,
                        output_url=output_url,
                        error=error,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 0:
                    existing = await session.get(Job, job_uuid)
                    if existing is None:
                        raise StatusWriteFailure(str(job_id), status, "job not found")
                    if not existing.is_terminal:
                        raise StatusWriteFailure(
                            str(job_id),
                            status,
                            f"Invalid transition: {existing.status.value} → {status.value}",
                        )
                    log.warning(
                        "job_already_terminal",
                        job_id=str(job_id),
                        status=existing.status.value,
                        discarded_status=status.value,
                    )
                    return None

                job = await session.get(Job, job_uuid, populate_existing=True)
        except SQLAlchemyError as e:
            raise StatusWriteFailure(str(job_id), status, f"{type(e).__name__}: {e}") from e

        log.info("job_status_updated", job_id=str(job_id), status=status.value, attempts=job.attempts)
        return job

    async def mark_done(self, job_id: str | uuid.UUID, output_url: str) -> Job | None:
        """Record PROCESSING → DONE.

        Returns:
            The updated Job, or None if the job was already terminal.

        Raises:
            ValueError: If output_url is empty.
            StatusWriteFailure: If the job is missing, not PROCESSING and not
                terminal, or the update cannot be committed.
        """
        if not output_url:
            raise ValueError("output_url is required for DONE")
        return await self._mark_terminal(job_id, JobStatus.DONE, output_url=output_url)

    async def mark_failed(self, job_id: str | uuid.UUID, error: str) -> Job | None:
        """Record PROCESSING → FAILED. Same contract as mark_done."""
        if not error:
            raise ValueError("error is required for FAILED")
        return await self._mark_terminal(job_id, JobStatus.FAILED, error=error)
