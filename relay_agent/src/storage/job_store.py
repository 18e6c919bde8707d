# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
File-backed job store.

One JSON document per job under ``jobs_dir``. Writes go through a temporary
file and an atomic rename, so readers (the web inspector) never observe a
half-written job.
"""

import re
import asyncio
import inspect
import logging

from uuid import uuid4
from typing import Any, Awaitable, Callable, Optional, Union
from pathlib import Path
from datetime import datetime
from pydantic import ValidationError

from .models import JobMetadata, JobStatus, StoredJob

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

Notifier = Callable[[str, dict[str, Any]], Union[Awaitable[None], None]]

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class JobStore:
    """
    CRUD access to stored jobs plus a push channel for live viewers.

    ``notify`` forwards events to the notifier registered with
    ``set_notifier`` (the web server's ``JobNotifier``), if any. Async
    notifiers are scheduled on the running loop and never awaited by callers.
    """

    def __init__(self, jobs_dir: Path | str, notifier: Optional[Notifier] = None):
        self.jobs_dir = Path(jobs_dir).expanduser()
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self._notifier = notifier
        self._pending: set[asyncio.Task] = set()

    def set_notifier(self, notifier: Optional[Notifier]) -> None:
        self._notifier = notifier

    def _path(self, job_id: str) -> Path:
        if not _JOB_ID_RE.match(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        return self.jobs_dir / f"{job_id}.json"

    def _write(self, job: StoredJob) -> None:
        path = self._path(job.id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(job.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)

    def create_job(
        self,
        task: str,
        metadata: Optional[JobMetadata] = None,
        job_id: Optional[str] = None,
    ) -> StoredJob:
        metadata = metadata or JobMetadata()
        job = StoredJob(
            id=job_id or uuid4().hex[:12],
            task=task,
            **metadata.model_dump(),
        )
        self._write(job)
        logger.debug(f"Created job {job.id}")
        return job

    def update_job(self, job: StoredJob) -> None:
        self._write(job)

    def complete_job(self, job: StoredJob, status: JobStatus = "completed") -> StoredJob:
        job.status = status
        job.completed_at = datetime.now()
        job.duration = (job.completed_at - job.started_at).total_seconds()
        self._write(job)
        self.notify(job.id, {"type": "job_complete", "status": status})
        return job

    def load_job(self, job_id: str) -> Optional[StoredJob]:
        try:
            path = self._path(job_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        return StoredJob.model_validate_json(path.read_text(encoding="utf-8"))

    def list_jobs(self, limit: int = 50) -> list[StoredJob]:
        """Stored jobs, newest first."""
        jobs = []
        for path in self.jobs_dir.glob("*.json"):
            try:
                jobs.append(StoredJob.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError) as e:
                logger.warning(f"Skipping unreadable job file {path.name}: {e}")
        jobs.sort(key=lambda j: j.started_at, reverse=True)
        return jobs[:limit]

    def notify(self, job_id: str, event: dict[str, Any]) -> None:
        if self._notifier is None:
            return
        try:
            result = self._notifier(job_id, event)
        except Exception as e:
            logger.error(f"Job notifier failed for {job_id}: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
