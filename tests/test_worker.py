from unittest.mock import MagicMock, patch

from rq.exceptions import NoSuchJobError

from adaptive_volume import worker


@patch('adaptive_volume.worker.FailedJobRegistry')
def test_requeues_every_failed_job(mock_registry_cls):
    registry = mock_registry_cls.return_value
    registry.get_job_ids.return_value = ['job-1', 'job-2']
    job_queue = MagicMock()
    job_queue.name = 'volume'

    assert worker.requeue_failed_jobs(job_queue) == ['job-1', 'job-2']

    mock_registry_cls.assert_called_once_with(queue=job_queue)
    assert [c.args[0] for c in registry.requeue.call_args_list] == ['job-1', 'job-2']


@patch('adaptive_volume.worker.FailedJobRegistry')
def test_expired_job_is_skipped(mock_registry_cls):
    registry = mock_registry_cls.return_value
    registry.get_job_ids.return_value = ['gone', 'job-2']
    registry.requeue.side_effect = [NoSuchJobError("gone"), None]

    assert worker.requeue_failed_jobs(MagicMock()) == ['job-2']


@patch('adaptive_volume.worker.FailedJobRegistry')
def test_nothing_to_requeue(mock_registry_cls):
    mock_registry_cls.return_value.get_job_ids.return_value = []
    assert worker.requeue_failed_jobs(MagicMock()) == []


@patch('adaptive_volume.worker.Worker')
@patch('adaptive_volume.worker.requeue_failed_jobs')
def test_main_requeues_before_working(mock_requeue, mock_worker_cls):
    worker.main()

    mock_requeue.assert_called_once_with()
    mock_worker_cls.assert_called_once_with([worker.queue], connection=worker.redis_conn)
    mock_worker_cls.return_value.work.assert_called_once_with(with_scheduler=True)
