"""
Dramatiq broker configuration.

Redis broker in deployments; the in-memory stub broker when
BROKER_BACKEND=stub (tests, local runs without Redis).
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from contempla.config.settings import settings
from contempla.utils.redis_utils import get_redis_url_masked


def _build_broker() -> dramatiq.Broker:
    if settings.broker_backend == "stub":
        logger.info("Dramatiq stub broker initialized")
        return StubBroker()

    redis_broker = RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password if settings.redis_password else None,
        db=settings.redis_db,
    )

    # ShutdownNotifications: lets workers finish the current job on shutdown
    # CurrentMessage: gives actors access to the message being processed
    # Retries: exponential backoff for failed jobs
    redis_broker.add_middleware(ShutdownNotifications())
    redis_broker.add_middleware(CurrentMessage())
    redis_broker.add_middleware(
        Retries(
            max_retries=3,
            min_backoff=1000,  # 1 second
            max_backoff=60000,  # 1 minute
        )
    )

    logger.info(f"Dramatiq broker initialized: {get_redis_url_masked()}")
    return redis_broker


broker = _build_broker()
dramatiq.set_broker(broker)
