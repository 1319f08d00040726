class QueueError(Exception):
    """Base class for queue store failures."""


class QueueStoreError(QueueError):
    """The backing database is unreachable or rejected an operation."""


class JobNotFoundError(QueueError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class JobStateError(QueueError):
    def __init__(self, job_id: str, status: str, expected: str):
        super().__init__(f"Job {job_id} is {status}, expected {expected}")
        self.job_id = job_id
        self.status = status
        self.expected = expected


class ConfigError(Exception):
    pass


class ProcessingError(Exception):
    """Raised by processors when a single job cannot be processed."""
