"""
Generic batch worker runner.

Reads the desired job name from the first CLI argument or the WORKER_JOB
environment variable and delegates the remaining arguments to that job.
The process exits with the job's exit code.
"""

import asyncio
import os
import sys
import uuid
from collections.abc import Awaitable, Callable

from music_pipeline.infrastructure.observability.logging import (
    bind_job_context,
    clear_job_context,
    get_logger,
    setup_logging,
)
from music_pipeline.jobs.generate_features_job import run_generate_features
from music_pipeline.jobs.ingest_catalog_job import run_ingest_catalog

logger = get_logger(__name__)

JobCoroutine = Callable[[list[str]], Awaitable[int]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "ingest_catalog": run_ingest_catalog,
    "generate_features": run_generate_features,
}


def _resolve_job(argv: list[str]) -> tuple[str, list[str]]:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if argv and not argv[0].startswith("-"):
        return argv[0].strip().lower(), argv[1:]
    return os.getenv("WORKER_JOB", "").strip().lower(), argv


async def run_worker(job_name: str, argv: list[str] | None = None) -> int:
    """Run the requested job and return its exit code."""
    name = (job_name or "").strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    bind_job_context(job=name, run_id=uuid.uuid4().hex[:12])
    try:
        logger.info("Starting batch job", args=argv or [])
        exit_code = await JOB_REGISTRY[name](list(argv or []))
        logger.info("Batch job finished", exit_code=exit_code)
        return exit_code
    finally:
        clear_job_context()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    job_name, job_argv = _resolve_job(sys.argv[1:])
    sys.exit(asyncio.run(run_worker(job_name, job_argv)))


if __name__ == "__main__":
    main()
