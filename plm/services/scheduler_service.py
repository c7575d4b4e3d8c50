"""
PLM Gate Workflow
Scheduler Service.

Registry of background jobs plus a runner that executes them inside the
Flask app context and records each run on a ScheduledJob row. Jobs are
triggered by an external cron (``flask run-job <name>``) or on demand via
the API.

Architecture:
    - register_job(name): decorator adding a job function to the registry
    - SchedulerService.run_job(name): executes and records a run
    - ScheduledJob rows persist schedule config and run counters
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from plm.models import db
from plm.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}

DEFAULT_SCHEDULES = {
    "overdue_scanner": {"hour": "8", "minute": "0", "description": "Daily at 08:00"},
    "periodic_review_scanner": {"hour": "7", "minute": "30", "description": "Daily at 07:30"},
}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("overdue_scanner")
        def scan_overdue_approvals(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


class SchedulerService:
    """
    Job runner bound to one Flask app.

    Jobs are executed within the app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        created = []
        for name, fn in _job_registry.items():
            if ScheduledJob.query.filter_by(job_name=name).first():
                continue
            job = ScheduledJob(
                job_name=name,
                description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                schedule_config=DEFAULT_SCHEDULES.get(name, {"hour": "0", "minute": "0"}),
                is_enabled=True,
            )
            db.session.add(job)
            created.append(job)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with job_name, status, duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}
        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._app.app_context():
            try:
                result = fn(cls._app)
            except Exception as exc:
                status = "failed"
                error = str(exc)
                db.session.rollback()
                logger.exception("Job %s failed", job_name, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - start) * 1000)
            cls._record(job_name, status, duration_ms, result, error)

        logger.info("Job %s finished: %s (%dms)", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def _record(cls, job_name, status, duration_ms, result, error):
        cls.ensure_jobs_registered()
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record is None:
            return
        job_record.record_run(
            status=status,
            duration_ms=duration_ms,
            result=result if isinstance(result, dict) else {"output": str(result)},
            error=error,
        )
        db.session.commit()

    @classmethod
    def list_jobs(cls) -> list[dict]:
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs
