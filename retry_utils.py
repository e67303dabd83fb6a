#!/usr/bin/env python3
"""
Retry helpers for SharePoint calls.

execute_with_retry() wraps a single call with a flat exponential backoff on
throttling errors; first_success() walks an ordered list of alternative
calls (primary method, then legacy method) and stops at the first one that
works. Both return an Outcome instead of raising, so callers decide whether
a failure is fatal for the site or just worth a log line.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

import requests
from loguru import logger

from sharepoint_site_client import SharePointApiError, ThrottledError

TRANSIENT_STATUS_CODES = (429, 503)
TRANSIENT_MARKERS = ("429", "503", "throttl", "too many requests", "server is busy")


@dataclass
class Outcome:
    """Result of a guarded call: either a value or the error that ended it."""
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else ""


def is_transient_error(error: BaseException) -> bool:
    """Return True for throttling / server-busy failures worth retrying."""
    if isinstance(error, ThrottledError):
        return True

    status_code = None
    if isinstance(error, SharePointApiError):
        status_code = error.status_code
    elif isinstance(error, requests.HTTPError) and error.response is not None:
        status_code = error.response.status_code

    if status_code in TRANSIENT_STATUS_CODES:
        return True

    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def retry_waits(max_retries: int, initial_wait_seconds: float, backoff_factor: float) -> List[float]:
    """Wait schedule used by execute_with_retry, e.g. [2, 4, 8, 16, 32] for the defaults."""
    return [initial_wait_seconds * (backoff_factor ** attempt) for attempt in range(max_retries)]


def execute_with_retry(operation: Callable[[], Any],
                       max_retries: int = 5,
                       initial_wait_seconds: float = 2,
                       backoff_factor: float = 2,
                       description: str = "operation",
                       sleep: Callable[[float], None] = time.sleep) -> Outcome:
    """
    Run an operation, retrying throttled attempts with exponential backoff.

    Args:
        operation: Zero-argument callable doing the remote work
        max_retries: Retries allowed after the first call
        initial_wait_seconds: Wait before the first retry
        backoff_factor: Multiplier applied to the wait for every further retry
        description: Human readable name used in log lines
        sleep: Blocking wait function

    Returns:
        Outcome with the operation's return value, or the last error
    """
    waits = retry_waits(max_retries, initial_wait_seconds, backoff_factor)
    attempt = 0
    while True:
        attempt += 1
        try:
            value = operation()
            logger.info(f"{description}: attempt {attempt}/{max_retries + 1} succeeded")
            return Outcome(ok=True, value=value, attempts=attempt)
        except Exception as e:
            if not is_transient_error(e):
                logger.info(f"{description}: attempt {attempt}/{max_retries + 1} failed (not retryable): {e}")
                return Outcome(ok=False, error=e, attempts=attempt)

            retry_index = attempt - 1
            if retry_index >= len(waits):
                logger.error(f"{description} still throttled after {max_retries} retries: {e}")
                return Outcome(ok=False, error=e, attempts=attempt)

            wait = waits[retry_index]
            logger.warning(
                f"{description}: attempt {attempt}/{max_retries + 1} throttled, "
                f"waiting {wait:g}s before retrying: {e}"
            )
            sleep(wait)


def retry_call(config, description: str, operation: Callable[[], Any],
               sleep: Optional[Callable[[float], None]] = None) -> Outcome:
    """execute_with_retry() using the retry settings of a BrandingConfig."""
    kwargs = {"sleep": sleep} if sleep else {}
    return execute_with_retry(
        operation,
        max_retries=config.max_retries,
        initial_wait_seconds=config.retry_initial_wait_seconds,
        backoff_factor=config.retry_backoff_factor,
        description=description,
        **kwargs,
    )


def connect_with_retry(client, site_url: str, config,
                       sleep: Optional[Callable[[float], None]] = None) -> bool:
    """Connect the client to site_url, waiting out throttled attempts."""
    outcome = retry_call(config, f"Connect to {site_url}", lambda: client.connect(site_url), sleep=sleep)
    if not outcome.ok:
        logger.error(f"Failed to connect to {site_url}: {outcome.error_message}")
        return False
    return bool(outcome.value)


def first_success(candidates: Sequence[Tuple[str, Callable[[], Outcome]]],
                  description: str = "operation") -> Outcome:
    """
    Try alternative implementations in order until one succeeds.

    Each candidate is a (label, callable) pair whose callable returns an
    Outcome. The last failure is returned when every candidate fails.
    """
    last = Outcome(ok=False, error=RuntimeError(f"No method available for {description}"))
    for label, candidate in candidates:
        last = candidate()
        if last.ok:
            logger.debug(f"{description} succeeded using {label}")
            return last
        logger.warning(f"{description} failed using {label}: {last.error_message}")
    return last
