import asyncio
import logging
from typing import Awaitable, Callable
import requests
from .models import CallbackPayload

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 5
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_TIMEOUT = 10.0

class NotificationError(Exception):
    def __init__(self, url: str, attempts: int, last_error: str):
        super().__init__(f"Failed to notify {url} after {attempts} attempt(s): {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error

def _post(url: str, body: bytes, timeout: float) -> requests.Response:
    headers = {"Content-Type": "application/json"}
    return requests.post(url, data=body, headers=headers, timeout=timeout)

async def notify_with_backoff(
    url: str,
    payload: CallbackPayload,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    timeout: float = DEFAULT_TIMEOUT,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """POST ``payload`` to ``url`` until a 2xx answer, doubling the wait between tries.

    Returns the number of attempts used. Raises NotificationError once
    ``attempts`` tries have failed; there is no wait after the last one.
    """
    body = payload.to_bytes()  # identical bytes on every attempt
    delay = initial_delay
    last_error = "no attempt made"
    for attempt in range(1, attempts + 1):
        try:
            logger.info("[NOTIFY] POST %s attempt %d/%d", url, attempt, attempts)
            r = await asyncio.to_thread(_post, url, body, timeout)
            if 200 <= r.status_code < 300:
                logger.info("[NOTIFY] Delivered to %s: status=%s", url, r.status_code)
                return attempt
            last_error = f"status {r.status_code}"
        except requests.RequestException as e:
            last_error = f"{type(e).__name__}: {e}"
        logger.warning("[NOTIFY] Attempt %d to %s failed: %s", attempt, url, last_error)
        if attempt < attempts:
            logger.info("[NOTIFY] sleep %ss before retry", delay)
            await sleep(delay)
            delay *= 2
    logger.error("[NOTIFY] Giving up on %s after %d attempt(s)", url, attempts)
    raise NotificationError(url, attempts, last_error)
