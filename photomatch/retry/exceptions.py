class RetryExhaustedError(Exception):
    """Raised when a retryable operation keeps failing past its attempt budget."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class PollTimeoutError(Exception):
    """Raised when a bounded poll never observes the expected state."""
