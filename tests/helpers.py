from datetime import timedelta

from humboi.errors import ClassifiedFailure, FailureCategory
from humboi.retry import RetryPolicy, linear_backoff

# Same schedule length as the default policy, without the waiting
FAST_POLICY = RetryPolicy(backoff=linear_backoff(step=timedelta(0)))


class Flaky:
    """Operation failing `failures` times with `category`, then returning value.

    failures=None fails forever.
    """

    def __init__(self, failures, category=FailureCategory.BUSY, value="ok"):
        self.failures = failures
        self.category = category
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.failures is None or self.calls <= self.failures:
            raise ClassifiedFailure(self.category, f"fail {self.calls}")
        return self.value


class RecordingStep:
    """Setup step that records each invocation and can fail its first attempts."""

    def __init__(self, name, tx_data, log, failures=0, category=FailureCategory.BUSY):
        self.name = name
        self.tx_data = tx_data
        self.log = log
        self.failures = failures
        self.category = category
        self.calls = 0

    def apply(self, conn):
        self.calls += 1
        self.log.append(self.name)
        if self.failures is None or self.calls <= self.failures:
            raise ClassifiedFailure(self.category, f"{self.name} failed")
        return conn.transact(self.tx_data)
