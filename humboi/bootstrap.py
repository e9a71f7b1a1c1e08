"""
Bootstrap coordinator - initialize a database exactly once-effectively.

Protocol:
1. Get the shared store client (built once per process)
2. Connect to the target database (retried)
3. Read the current snapshot and look for the marker ident (retried)
   - present: return ALREADY_INITIALIZED, nothing is written
4. Apply each setup step in order, each one retried on its own

A transient failure on step k retries step k only. Steps are never run
concurrently and step k+1 starts only after step k's transaction returned.

Two callers racing on an uninitialized database may both run the full
sequence. There is no cross-process lock; steps must be safe to apply twice
(ident definitions, identity-keyed upserts, assertions of facts). A fatal
step failure leaves the database partially initialized; there is no
rollback.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from humboi.connection import get_client, get_connection
from humboi.errors import FailureCategory, anomaly
from humboi.retry import DEFAULT_RETRY_POLICY, RetryPolicy, with_retry
from humboi.stores import StoreClient, StoreConnection, TxResult

logger = logging.getLogger(__name__)


class BootstrapStatus(str, Enum):
    """Outcome of ensure_initialized()."""
    ALREADY_INITIALIZED = "already-initialized"
    INITIALIZED = "initialized"


@dataclass(frozen=True)
class SetupStep:
    """One ordered mutation, transacted as a single batch."""
    name: str
    tx_data: list[Any] = field(default_factory=list)

    def apply(self, conn: StoreConnection) -> TxResult:
        return conn.transact(self.tx_data)


@dataclass(frozen=True)
class DatasetSetup:
    """Marker ident plus the steps that create it."""
    marker: str
    steps: tuple[SetupStep, ...]


class SetupRegistry:
    """
    Registry mapping database names to their DatasetSetup.

    Usage:
        registry = SetupRegistry()
        registry.register("inventory", DatasetSetup(marker="inv/sku", steps=...))

        # Or use factory with the sample dataset
        registry = SetupRegistry.create_default()
    """

    def __init__(self) -> None:
        self._setups: dict[str, DatasetSetup] = {}

    def register(self, db_name: str, setup: DatasetSetup) -> None:
        self._setups[db_name] = setup

    def lookup(self, db_name: str) -> Optional[DatasetSetup]:
        return self._setups.get(db_name)

    def names(self) -> list[str]:
        return sorted(self._setups)

    @classmethod
    def create_default(cls, db_name: Optional[str] = None) -> "SetupRegistry":
        """Registry with the inventory sample dataset under db_name (default: DEFAULT_DATABASE_NAME)."""
        from humboi.config import DEFAULT_DATABASE_NAME
        from humboi.inventory import INVENTORY_SETUP

        registry = cls()
        registry.register(db_name or DEFAULT_DATABASE_NAME, INVENTORY_SETUP)
        return registry


def ensure_initialized(
    target_name: str,
    steps: Iterable[SetupStep],
    *,
    marker: str,
    client: Optional[StoreClient] = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> BootstrapStatus:
    """
    Ensure target_name holds marker, running steps if it does not.

    Args:
        target_name: Database name
        steps: Ordered setup steps
        marker: Ident whose presence means the database is initialized
        client: Store client (default: shared client from get_client())
        policy: Retry policy for connect, marker read and each step

    Returns:
        ALREADY_INITIALIZED or INITIALIZED

    Raises:
        ClassifiedFailure: Propagated unchanged from connect or a step,
            after retries when transient
    """
    client = client if client is not None else get_client(policy=policy)
    conn = get_connection(target_name, client=client, policy=policy)

    db = with_retry(conn.db, policy)
    if db.has_ident(marker):
        logger.info(f"{target_name}: already initialized (marker {marker} present)")
        return BootstrapStatus.ALREADY_INITIALIZED

    steps = list(steps)
    logger.info(f"{target_name}: marker {marker} absent, running {len(steps)} setup steps")
    for n, step in enumerate(steps, start=1):
        result = with_retry(lambda step=step: step.apply(conn), policy)
        logger.info(f"{target_name}: step {n}/{len(steps)} {step.name} -> {len(result.datoms)} datoms")

    return BootstrapStatus.INITIALIZED


def ensure_dataset(
    target_name: str,
    registry: Optional[SetupRegistry] = None,
    *,
    client: Optional[StoreClient] = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> BootstrapStatus:
    """
    Ensure the registered dataset for target_name exists.

    Raises:
        ClassifiedFailure: NOT_FOUND if no setup is registered for target_name
    """
    registry = registry if registry is not None else SetupRegistry.create_default()
    setup = registry.lookup(target_name)
    if setup is None:
        anomaly(FailureCategory.NOT_FOUND, f"Could not resolve setup for {target_name}")
    return ensure_initialized(
        target_name,
        setup.steps,
        marker=setup.marker,
        client=client,
        policy=policy,
    )


def ensure_sample_dataset(
    db_name: Optional[str] = None,
    *,
    client: Optional[StoreClient] = None,
) -> BootstrapStatus:
    """Create the inventory sample database if necessary."""
    from humboi.config import DEFAULT_DATABASE_NAME

    name = db_name or DEFAULT_DATABASE_NAME
    return ensure_dataset(name, SetupRegistry.create_default(name), client=client)
