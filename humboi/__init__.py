"""
humboi - resilient bootstrap of a transactional inventory database

Retries store operations on transient failures and initializes a database
exactly once-effectively, guarded by a marker ident.
"""

__version__ = "0.1.0"

from .errors import ClassifiedFailure, FailureCategory, anomaly
from .retry import RetryPolicy, with_retry
from .bootstrap import BootstrapStatus, SetupStep, ensure_dataset, ensure_initialized

__all__ = [
    "BootstrapStatus",
    "ClassifiedFailure",
    "FailureCategory",
    "RetryPolicy",
    "SetupStep",
    "anomaly",
    "ensure_dataset",
    "ensure_initialized",
    "with_retry",
]
