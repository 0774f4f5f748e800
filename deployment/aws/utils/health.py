"""HTTP health polling against the load balancer."""
import logging
import time
from typing import Callable, Optional

import requests

from deployment.aws.exceptions import HealthCheckFailedError

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"


def normalize_url(url_or_dns: str) -> str:
    """Accept either a full URL or a bare ALB DNS name."""
    url = url_or_dns.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url


def is_healthy(base_url: str, session: Optional[requests.Session] = None, timeout: float = 10) -> bool:
    """True when ``GET {base_url}/health`` answers with a non-error status."""
    http = session or requests
    try:
        response = http.get(f"{normalize_url(base_url)}{HEALTH_PATH}", timeout=timeout)
    except requests.RequestException as e:
        logger.debug(f"Health request failed: {e}")
        return False
    return response.status_code < 400


def wait_for_healthy(base_url: str,
                     max_attempts: int = 10,
                     delay: float = 30,
                     initial_wait: float = 0,
                     sleep: Callable[[float], None] = time.sleep,
                     session: Optional[requests.Session] = None) -> int:
    """
    Poll the health endpoint a fixed number of times.

    Returns:
        The attempt number that succeeded

    Raises:
        HealthCheckFailedError: after ``max_attempts`` failures
    """
    url = normalize_url(base_url)
    logger.info(f"Application URL: {url}")

    if initial_wait:
        logger.info(f"⏳ Waiting {initial_wait:.0f}s for the load balancer to be ready...")
        sleep(initial_wait)

    for attempt in range(1, max_attempts + 1):
        logger.info(f"Health check attempt {attempt}/{max_attempts}")
        if is_healthy(url, session=session):
            logger.info("✅ Health check passed!")
            return attempt

        if attempt < max_attempts:
            logger.warning(f"⚠️ Health check failed, retrying in {delay:.0f} seconds...")
            sleep(delay)

    logger.error(f"❌ Health check failed after {max_attempts} attempts")
    raise HealthCheckFailedError(f"{url}{HEALTH_PATH}", max_attempts)
