"""RQ worker for the volume queue. Run with ``python -m adaptive_volume.worker``."""
import logging

from rq import Worker
from rq.exceptions import InvalidJobOperation, NoSuchJobError
from rq.registry import FailedJobRegistry

from .tasks import queue, redis_conn

logger = logging.getLogger(__name__)


def requeue_failed_jobs(job_queue=queue):
    """
    Puts rollovers and aggregations that exhausted their retries back on the queue.

    Jobs that expired from Redis in the meantime are skipped. Returns the ids
    of the requeued jobs.
    """
    registry = FailedJobRegistry(queue=job_queue)
    requeued = []
    for job_id in registry.get_job_ids():
        try:
            registry.requeue(job_id)
        except (NoSuchJobError, InvalidJobOperation) as e:
            logger.warning("Could not requeue failed volume job %s: %s", job_id, e)
            continue
        requeued.append(job_id)

    if requeued:
        logger.info("Requeued %s failed volume job(s) on queue '%s'.", len(requeued), job_queue.name)
    return requeued


def main():
    logging.basicConfig(level=logging.INFO)
    requeue_failed_jobs()
    worker = Worker([queue], connection=redis_conn)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
