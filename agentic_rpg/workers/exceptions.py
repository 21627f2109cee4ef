# ABOUTME: Exception definitions for the image job pipeline.
# ABOUTME: Defines error types raised while generating, retrying and looking up image jobs.


class JobTimeout(Exception):
    """Raised when a single generation attempt exceeds its timeout"""

    def __init__(self, job_id: str, timeout_seconds: float):
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Job {job_id} attempt timed out after {timeout_seconds}s")


class JobRetriesExhausted(Exception):
    """Raised when a job has failed on every allowed attempt"""

    def __init__(self, job_id: str, attempts: int, last_error: str | None = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Job {job_id} failed after {attempts} attempt(s): {last_error or 'unknown error'}"
        )


class JobNotFound(KeyError):
    """Raised when a job id is not present in the active or completed registry"""

    pass


class ImageGenerationFailed(Exception):
    """Raised by an image generator when an attempt produces no image"""

    pass
