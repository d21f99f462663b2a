from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ernest.config.settings import runtime_settings
from ernest.core.events import ExportEventSink
from ernest.exporters.common import (
    ExportContext,
    ExportError,
    ExportErrorCode,
    ExportFinished,
    ExportLog,
    ExportLogLevel,
    ExportProgress,
    ExportRequest,
    ExportResponse,
    progress_percent,
)
from ernest.logging_config import reset_job_id, set_job_id

# ernest/core/export_jobs.py
# Thread-safe export job registry and the manager that runs jobs on workers.

LOGGER = logging.getLogger(__name__)

ExportRunner = Callable[[ExportContext], ExportResponse]


class UnknownExportJob(KeyError):
    """Raised when cancelling a job id that is not registered."""

    def __str__(self) -> str:
        return "Unknown export job"


@dataclass
class ExportJob:
    id: str
    cancel: threading.Event = field(default_factory=threading.Event)


class ExportJobRegistry:
    """
    Process-wide map of in-flight and finished export jobs.

    A single lock covers insert/cancel/remove.  Critical sections only touch
    the dict and the job's cancel flag; no I/O happens under the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, ExportJob] = {}

    def insert(self, job: ExportJob) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def cancel(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise UnknownExportJob(job_id)
            job.cancel.set()

    def remove(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def get(self, job_id: str) -> Optional[ExportJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


def _internal_failure(ctx: ExportContext, exc: BaseException) -> ExportResponse:
    logs = list(ctx.logs)
    logs.append(ExportLog(ExportLogLevel.ERROR, "Export crashed", str(exc)))
    return ExportResponse(
        ok=False,
        summary="Export failed",
        logs=logs,
        error=ExportError(ExportErrorCode.EXPORT_FAILED, "Export failed", str(exc)),
    )


class ExportJobManager:
    """Submit, cancel and clean up background export jobs.

    The registry is owned by the caller (the app's composition root) and
    passed in.  Every submitted job emits exactly one ``finished`` event; its
    registry entry stays until :meth:`cleanup`.
    """

    def __init__(
        self,
        registry: ExportJobRegistry,
        sink: ExportEventSink,
        runner: ExportRunner,
        *,
        executor: Optional[Executor] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.registry = registry
        self.sink = sink
        self.runner = runner
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers or runtime_settings().export_workers,
            thread_name_prefix="ExportWorker",
        )

    def submit(self, request: ExportRequest) -> str:
        job = ExportJob(id=str(uuid.uuid4()))
        self.registry.insert(job)
        LOGGER.info(
            "Export job submitted",
            extra={"job_id": job.id, "target": request.target.value},
        )
        try:
            self._executor.submit(self._run, job, request)
        except RuntimeError:
            self.registry.remove(job.id)
            raise
        return job.id

    def cancel(self, job_id: str) -> None:
        self.registry.cancel(job_id)
        LOGGER.info("Export job cancel requested", extra={"job_id": job_id})

    def cleanup(self, job_id: str) -> None:
        self.registry.remove(job_id)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _emit_progress(self, job_id: str, sent_bytes: int, total_bytes: int) -> None:
        event = ExportProgress(
            job_id=job_id,
            sent_bytes=sent_bytes,
            total_bytes=total_bytes,
            percent=progress_percent(sent_bytes, total_bytes),
        )
        try:
            self.sink.progress(event)
        except Exception:
            LOGGER.warning("Progress sink failed", exc_info=True, extra={"job_id": job_id})

    def _run(self, job: ExportJob, request: ExportRequest) -> None:
        ctx = ExportContext(
            job_id=job.id,
            request=request,
            cancel=job.cancel,
            on_progress=lambda sent, total: self._emit_progress(job.id, sent, total),
        )
        token = set_job_id(job.id)
        try:
            response = self.runner(ctx)
        except Exception as exc:
            LOGGER.exception("Export job crashed")
            response = _internal_failure(ctx, exc)
        finally:
            reset_job_id(token)

        LOGGER.info(
            "Export job finished",
            extra={
                "job_id": job.id,
                "ok": response.ok,
                "code": response.error.code.value if response.error else None,
            },
        )
        try:
            self.sink.finished(ExportFinished(job_id=job.id, response=response))
        except Exception:
            LOGGER.warning("Finished sink failed", exc_info=True, extra={"job_id": job.id})


__all__ = [
    "ExportJob",
    "ExportJobManager",
    "ExportJobRegistry",
    "ExportRunner",
    "UnknownExportJob",
]
