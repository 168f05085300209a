"""
HTTP smoke check of the platform's base URL.
"""

import time
import requests
from typing import Any, Callable, Dict
import logging

logger = logging.getLogger(__name__)


class SmokeTestResult:
    """Result of a smoke test."""

    def __init__(self, success: bool, message: str, details: Dict[str, Any] = None):
        self.success = success
        self.message = message
        self.details = details or {}


def run_smoke_check(
    url: str,
    max_tries: int = 5,
    retry_delay: float = 5,
    expected_status=(200,),
    sleep: Callable[[float], None] = time.sleep,
) -> SmokeTestResult:
    """
    GET ``url`` until it answers with an expected status.

    Args:
        url: Platform base URL
        max_tries: Maximum number of attempts
        retry_delay: Delay between attempts in seconds
        expected_status: Acceptable status codes
        sleep: Sleep function

    Returns:
        SmokeTestResult
    """
    last_error = None
    for attempt in range(max_tries):
        try:
            response = requests.get(url, timeout=10)
            if response.status_code in expected_status:
                logger.info("Smoke check passed: %s -> %s", url, response.status_code)
                return SmokeTestResult(True, f"{url} answered {response.status_code}", {
                    "status": response.status_code,
                    "attempts": attempt + 1,
                })
            last_error = f"Expected status {list(expected_status)}, got {response.status_code}"
        except requests.exceptions.RequestException as e:
            last_error = f"Request failed: {e}"

        if attempt < max_tries - 1:
            logger.debug("Attempt %d failed, retrying in %ss...", attempt + 1, retry_delay)
            sleep(retry_delay)

    logger.warning("Smoke check failed for %s: %s", url, last_error)
    return SmokeTestResult(False, f"{url} did not answer: {last_error}", {
        "error": last_error,
        "attempts": max_tries,
    })
