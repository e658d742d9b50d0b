"""
Error tracker reporting through Sentry
"""

import sentry_sdk

from .config import get_logger

logger = get_logger()

_initialized_dsn = None


def sentry_reporter(context: str, err: BaseException) -> None:
    """Send one exception to Sentry, tagged with the logging context it came from"""
    sentry_sdk.capture_exception(err, tags={'context': context})


def init_sentry(dsn, environment: str = "development"):
    """
    Initialize the Sentry client once per process

    Args:
        dsn: Sentry DSN, reporting stays off when empty
        environment: Deployment environment shown in Sentry

    Returns:
        The reporter callable, or None when Sentry is not enabled
    """
    global _initialized_dsn

    if not dsn:
        return None
    if _initialized_dsn == dsn:
        return sentry_reporter

    try:
        sentry_sdk.init(dsn=dsn, environment=environment, traces_sample_rate=0.0)
    except Exception as e:
        logger.warning("Sentry init failed: %s", e)
        return None

    _initialized_dsn = dsn
    logger.info("Sentry initialized")
    return sentry_reporter
