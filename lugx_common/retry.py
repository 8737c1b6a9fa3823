# lugx_common/retry.py
from typing import Callable, Optional

from tenacity import RetryError, Retrying, stop_after_attempt, wait_fixed

from lugx_common import settings
from lugx_common.errors import StartupError
from lugx_common.logging import get_logger

logger = get_logger(__name__)


def run_with_startup_retry(
    step: Callable[[], None],
    name: str,
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
) -> None:
    """
    Run a one-time startup step (schema creation, seeding) with a fixed
    backoff. Exhausting the attempts raises StartupError.
    """
    attempts = settings.INIT_RETRIES if attempts is None else attempts
    delay = settings.INIT_RETRY_DELAY if delay is None else delay

    def _log_failure(retry_state):
        left = attempts - retry_state.attempt_number
        logger.error(f"{name} init error ({left} left): {retry_state.outcome.exception()}")

    try:
        for attempt in Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(delay),
            after=_log_failure,
        ):
            with attempt:
                step()
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        raise StartupError(f"{name} initialisation failed after {attempts} attempts") from cause

    logger.info(f"{name} database ready")
