"""Fire-and-forget healthcheck notifications."""

import logging

import requests

logger = logging.getLogger("config_watcher.healthcheck")

NOTIFY_TIMEOUT = 10


def healthcheck_endpoint(url: str, is_error: bool) -> str:
    if is_error:
        return url.rstrip("/") + "/fail"
    return url


def notify(url: str | None, message: str, is_error: bool = False) -> bool:
    """POST a message to a healthcheck URL (``<url>/fail`` for errors).

    Failures are logged at warning level and never raised.

    Returns:
        True if the endpoint acknowledged the notification
    """
    if not url:
        return False

    endpoint = healthcheck_endpoint(url, is_error)
    try:
        response = requests.post(endpoint, data=message.encode(), timeout=NOTIFY_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning("Failed to ping health check URL %s: %s", endpoint, e)
        return False

    logger.debug("Health check notification sent to %s", endpoint)
    return True
