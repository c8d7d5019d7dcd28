"""Redis/RQ queue helpers for work that leaves the request cycle."""

from __future__ import annotations

import logging
from uuid import UUID

from redis import Redis
from rq import Queue, Retry
from rq.job import Job

from app.core.config import Settings

logger = logging.getLogger(__name__)


class JobQueues:
    """Lazily connected RQ queues for one settings object."""

    def __init__(self, settings: Settings, connection: Redis | None = None):
        self.settings = settings
        self._connection = connection
        self._queues: dict[str, Queue] = {}

    @property
    def connection(self) -> Redis:
        if self._connection is None:
            self._connection = Redis.from_url(self.settings.REDIS_URL)
        return self._connection

    def get_queue(self, name: str | None = None) -> Queue:
        queue_name = name or self.settings.RQ_QUEUE_DEFAULT
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                queue_name,
                connection=self.connection,
                default_timeout=self.settings.RQ_DEFAULT_TIMEOUT,
            )
        return self._queues[queue_name]

    def _retry(self) -> Retry | None:
        retry_count = max(0, self.settings.EVENT_QUEUE_MAX_ATTEMPTS - 1)
        if retry_count == 0:
            return None
        return Retry(max=retry_count, interval=[2, 5, 10, 30][:retry_count])

    def enqueue_document_processing(self, document_id: UUID) -> str:
        queue = self.get_queue(self.settings.RQ_QUEUE_DOCUMENTS)
        job: Job = queue.enqueue(
            "app.services.jobs.process_document_job",
            str(document_id),
            retry=self._retry(),
            job_timeout=self.settings.RQ_DEFAULT_TIMEOUT,
            description=f"process_document_job:{document_id}",
        )
        logger.info("Queued document %s for processing (job %s)", document_id, job.id)
        return job.id

    def enqueue_notification_delivery(self, notification_id: UUID, channel: str) -> str:
        queue = self.get_queue(self.settings.RQ_QUEUE_NOTIFICATIONS)
        job: Job = queue.enqueue(
            "app.services.jobs.deliver_notification_job",
            str(notification_id),
            channel,
            retry=self._retry(),
            job_timeout=self.settings.RQ_DEFAULT_TIMEOUT,
            description=f"deliver_notification:{channel}:{notification_id}",
        )
        return job.id
