"""Retry engine: run one logical step with a bounded retry budget."""
import logging
from typing import Awaitable, Callable, Optional

from .cancellation import CancelToken
from .errors import OperationCanceled, StepFailed

log = logging.getLogger(__name__)

RetryCallback = Callable[[str, int, int], None]


async def execute_step(
    step_name: str,
    max_retries: int,
    retry_delay: float,
    action: Callable[[], Awaitable[None]],
    cancel: CancelToken,
    on_retry: Optional[RetryCallback] = None,
) -> int:
    """
    Attempt `action`; on failure wait max(1, retry_delay) seconds and try again,
    up to max_retries extra attempts. Returns the number of retries used.
    Exhaustion raises StepFailed wrapping the last cause. Cancellation is never retried.
    """
    max_retries = max(0, max_retries)
    attempt = 0
    while True:
        cancel.raise_if_cancelled(step_name)
        try:
            if attempt > 0:
                log.info("[%s] retry %d/%d", step_name, attempt, max_retries)
            await action()
            return attempt
        except OperationCanceled:
            raise
        except Exception as e:
            if attempt >= max_retries:
                raise StepFailed(step_name, attempt, e) from e
            attempt += 1
            log.info("[%s] failed: %s -> retry %d/%d", step_name, e, attempt, max_retries)
            if on_retry is not None:
                on_retry(step_name, attempt, max_retries)
            await cancel.sleep(max(1.0, retry_delay), step=step_name)
