"""Bounded polling of a condition."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from everest_provisioner.utils.errors import WaitTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
POLL_TIMEOUT = 300.0


def wait_until(
    condition: Callable[[], bool],
    interval: float = POLL_INTERVAL,
    timeout: float = POLL_TIMEOUT,
    what: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Evaluate ``condition`` every ``interval`` seconds until it returns true.

    The first evaluation happens immediately. A falsy result is retried; an
    exception raised by ``condition`` propagates at once without further
    evaluations.

    Raises:
        WaitTimeoutError: ``timeout`` seconds elapsed without a truthy result.
    """
    retrying = Retrying(
        retry=retry_if_result(lambda ok: not ok),
        wait=wait_fixed(interval),
        stop=stop_after_delay(timeout),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.DEBUG),
    )
    try:
        retrying(condition)
    except RetryError as e:
        raise WaitTimeoutError(what, timeout) from e
