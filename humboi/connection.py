"""
Shared store client and connections.

The client is built once per process from configuration and then shared by
every caller. Construction runs under a lock so concurrent first use still
builds exactly one client; after publication the handle is only read. The
lock is taken per construction attempt, never across a backoff wait.
"""

import logging
import threading
from typing import Optional

from humboi.config import HumboiConfig, load_config
from humboi.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from humboi.stores import StoreClient, StoreConnection, make_client

logger = logging.getLogger(__name__)

_CLIENT: Optional[StoreClient] = None
_CLIENT_LOCK = threading.Lock()


def get_client(
    config: Optional[HumboiConfig] = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> StoreClient:
    """
    Get the process-wide store client, building it on first use.

    Args:
        config: Configuration used only if the client is not built yet
            (default: load_config())
        policy: Retry policy for client construction

    Raises:
        ConfigError: If no configuration is available
        ClassifiedFailure: If the client cannot be built
    """
    client = _CLIENT
    if client is not None:
        return client

    cfg = config if config is not None else load_config()
    return with_retry(lambda: _build_once(cfg), policy)


def _build_once(cfg: HumboiConfig) -> StoreClient:
    """Build and publish the client unless another caller already did."""
    global _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            logger.info(f"Creating {cfg.backend} store client")
            _CLIENT = make_client(cfg)
        return _CLIENT


def set_client(client: StoreClient) -> None:
    """Install a prebuilt client (tests, embedding)."""
    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = client


def reset_client() -> None:
    """Drop the cached client (for testing)."""
    global _CLIENT
    with _CLIENT_LOCK:
        _CLIENT = None


def get_connection(
    db_name: str,
    client: Optional[StoreClient] = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> StoreConnection:
    """Connect to db_name on the shared client, retrying transient failures."""
    client = client if client is not None else get_client(policy=policy)
    logger.info(f"Connecting to {db_name}")
    return with_retry(lambda: client.connect(db_name), policy)
