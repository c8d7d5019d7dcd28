"""RQ worker entrypoint.

Run with:
  PYTHONPATH=/app rq worker documents notifications default
or:
  python worker.py
"""

from __future__ import annotations

import logging

from rq import Worker

from app.core.config import get_settings
from app.services.rq_queue import JobQueues

logging.basicConfig(level=logging.INFO)


def main() -> None:
    settings = get_settings()
    queues = JobQueues(settings)
    names = [
        settings.RQ_QUEUE_DOCUMENTS,
        settings.RQ_QUEUE_NOTIFICATIONS,
        settings.RQ_QUEUE_DEFAULT,
    ]
    worker = Worker([queues.get_queue(name) for name in names], connection=queues.connection)
    # Retry intervals are delivered by the RQ scheduler
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
