"""Convenience entry point for running a Celery worker with embedded beat.

Most deployments will invoke the standard Celery CLI
(``celery -A infrastructure.tasks worker -B -Q settlement``), but keeping a
small script makes local testing or Procfile-style runners straightforward.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=["worker", "--beat", "--hostname=worker@%h", "--queues=settlement,default"],
    )


if __name__ == "__main__":
    main()
