"""
Conversion job submission.

A submission is validated, recorded as a ``pending`` job, advanced to
``processing``, converted, and then moved to exactly one terminal state. The
job row is written even when the conversion fails, so every accepted call
leaves one audit record. The terminal update and the usage count are
stored together or not at all. Nothing is retried.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .audit import AuditLog
from .converters import ConversionContext, run_conversion, validate_request
from .database import InvalidTransition, JobDatabase
from .errors import ConversionFailure, InfrastructureFailure, Unauthorized
from .key_manager import Identity
from .models import ConversionRequest, JobStatus, SubmitResponse
from .utils import utcnow

logger = logging.getLogger(__name__)

UNEXPECTED_FAILURE_MESSAGE = "Unexpected conversion error"


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.owner:
        raise Unauthorized()
    return identity


class ConversionService:
    """
    Sole writer of new jobs and terminal transitions.

    Attributes:
        database: Job store
        context: Collaborators the converters delegate to
    """

    def __init__(
        self,
        database: JobDatabase,
        context: ConversionContext,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.database = database
        self.context = context
        self.audit = audit or AuditLog(database, clock)
        self.clock = clock
        self.timer = timer

    def submit(self, identity: Optional[Identity], request: ConversionRequest) -> SubmitResponse:
        """
        Run one conversion for ``identity``.

        Raises:
            Unauthorized: If there is no caller identity
            ValidationError: If the request is malformed; no job is created
            InfrastructureFailure: If the job could not be written
        """
        identity = require_identity(identity)
        validated = validate_request(request)
        conversion_type = validated.conversion_type.value

        logger.info("Starting conversion: %s for owner: %s", conversion_type, identity.owner)
        job = self._open_job(identity.owner, conversion_type, validated.input_data)

        started = self.timer()
        try:
            result = run_conversion(validated, self.context)
        except ConversionFailure as exc:
            elapsed = self._elapsed_ms(started)
            message = str(exc)
            logger.warning("Conversion %s failed for job %s: %s", conversion_type, job["id"], message)
            return self._fail(identity.owner, job["id"], conversion_type, message, elapsed)
        except Exception:
            elapsed = self._elapsed_ms(started)
            logger.exception("Unexpected error in %s converter for job %s", conversion_type, job["id"])
            return self._fail(identity.owner, job["id"], conversion_type, UNEXPECTED_FAILURE_MESSAGE, elapsed)

        elapsed = self._elapsed_ms(started)
        self._finish(identity.owner, job["id"], conversion_type, JobStatus.COMPLETED, elapsed, output_data=result)
        logger.info("Conversion %s completed in %sms (job %s)", conversion_type, elapsed, job["id"])
        return SubmitResponse(
            success=True,
            job_id=job["id"],
            result=result,
            processing_time_ms=elapsed,
        )

    def record_job(
        self,
        identity: Identity,
        conversion_type: str,
        input_data: Optional[Dict[str, Any]],
        output_data: Dict[str, Any],
        processing_time_ms: int,
    ) -> str:
        """
        Record a conversion that was carried out elsewhere as a completed job.

        Returns:
            The new job id
        """
        job = self._open_job(identity.owner, conversion_type, input_data)
        self._finish(identity.owner, job["id"], conversion_type, JobStatus.COMPLETED, processing_time_ms, output_data=output_data)
        return job["id"]

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self.timer() - started) * 1000))

    def _open_job(self, owner: str, conversion_type: str, input_data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            job = self.database.open_job(owner, conversion_type, input_data, created_at=self.clock())
        except (sqlite3.Error, InvalidTransition) as exc:
            logger.error("Error creating job for owner %s: %s", owner, exc)
            self.audit.record(
                "error",
                "convert",
                "Failed to create conversion job",
                metadata={"error": str(exc), "conversion_type": conversion_type},
                owner=owner,
            )
            raise InfrastructureFailure("Failed to create conversion job") from exc
        return job

    def _finish(
        self,
        owner: str,
        job_id: str,
        conversion_type: str,
        status: JobStatus,
        processing_time_ms: int,
        output_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        now = self.clock()
        try:
            self.database.finish_job(
                job_id,
                owner,
                conversion_type,
                status,
                updated_at=now,
                processing_time_ms=processing_time_ms,
                output_data=output_data,
                error_message=error_message,
            )
        except (sqlite3.Error, InvalidTransition) as exc:
            logger.error("Error updating job %s to %s: %s", job_id, status.value, exc)
            self.audit.record(
                "error",
                "convert",
                "Failed to finalize conversion job",
                metadata={"error": str(exc), "job_id": job_id, "status": status.value},
                owner=owner,
            )
            raise InfrastructureFailure("Failed to update conversion job") from exc

    def _fail(self, owner: str, job_id: str, conversion_type: str, message: str, elapsed: int) -> SubmitResponse:
        self._finish(owner, job_id, conversion_type, JobStatus.FAILED, elapsed, error_message=message)
        return SubmitResponse(
            success=False,
            job_id=job_id,
            error=ConversionFailure.public_message,
            details=message,
            processing_time_ms=elapsed,
        )
