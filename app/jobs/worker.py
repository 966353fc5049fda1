"""
Worker entrypoint for the triage batch.

`mail_triage` runs the polling scheduler, `mail_triage_once` a single pass
(for cron-style hosting). The job comes from argv[1] or WORKER_JOB.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import get_settings
from app.features.mail_triage.jobs.triage_job import (
    run_mail_triage_once,
    start_mail_triage_scheduler,
)
from app.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "mail_triage": start_mail_triage_scheduler,
    "mail_triage_once": run_mail_triage_once,
}


def _resolve_job_name() -> str:
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "mail_triage").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run one registered job until it returns."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"No worker job named '{name}' (choose from: {', '.join(sorted(JOB_REGISTRY))})"
        )

    logger.info("Worker starting", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=get_settings().LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
