"""Request outcome tracking and health reporting."""

import enum
import threading
from collections import deque
from typing import Final, final

# Error ratio above which a serving process reports degraded health
_ERROR_RATIO_THRESHOLD: Final = 0.05


class HealthStatus(enum.StrEnum):
    """Overall process health."""

    HEALTHY = 'healthy'
    UNHEALTHY_SERVING = 'unhealthy-serving'
    UNHEALTHY = 'unhealthy'


@final
class RequestTracker:
    """Ring buffer of the outcomes of the most recent requests.

    Only the last ``window_size`` outcomes count towards the ratio.
    """

    def __init__(self, window_size: int) -> None:
        """Initialize an empty tracker.

        Args:
            window_size: Number of most recent outcomes kept.

        Raises:
            ValueError: If the window is not positive.
        """
        if window_size <= 0:
            raise ValueError('window_size must be positive')
        self._lock = threading.Lock()
        self._outcomes: deque[bool] = deque(maxlen=window_size)

    def record(self, success: bool) -> None:
        """Add the outcome of one request.

        Args:
            success: False if the request failed with an internal error.
        """
        with self._lock:
            self._outcomes.append(success)

    def counts(self) -> tuple[int, int]:
        """Return (successful, failed) counts within the window."""
        with self._lock:
            failed = self._outcomes.count(False)
            return len(self._outcomes) - failed, failed

    def error_ratio(self) -> float:
        """Share of failed requests within the window, 0 when empty."""
        succeeded, failed = self.counts()
        total = succeeded + failed
        if total == 0:
            return 0.0
        return failed / total


@final
class HealthReporter:
    """Combines dependency checks and request outcomes into one status.

    A dependency ("trait") reported down makes the process
    ``unhealthy``. With every trait up, an error ratio above the
    threshold degrades it to ``unhealthy-serving``.
    """

    def __init__(
        self,
        tracker: RequestTracker,
        threshold: float = _ERROR_RATIO_THRESHOLD,
    ) -> None:
        """Initialize the reporter.

        Args:
            tracker: Outcomes of recent requests.
            threshold: Highest error ratio still reported healthy.
        """
        self.tracker = tracker
        self.threshold = threshold
        self._lock = threading.Lock()
        self._traits: dict[str, bool] = {}

    def set_trait(self, name: str, is_up: bool) -> None:
        """Record whether one dependency is currently available.

        Args:
            name: Dependency name, e.g. ``rabbitmq``.
            is_up: Current availability.
        """
        with self._lock:
            self._traits[name] = is_up

    def status(self) -> HealthStatus:
        """Compute the current overall status."""
        with self._lock:
            traits_up = all(self._traits.values())
        if not traits_up:
            return HealthStatus.UNHEALTHY
        if self.tracker.error_ratio() > self.threshold:
            return HealthStatus.UNHEALTHY_SERVING
        return HealthStatus.HEALTHY

    def snapshot(self) -> dict[str, object]:
        """Status plus the figures it was derived from."""
        succeeded, failed = self.tracker.counts()
        with self._lock:
            traits = dict(self._traits)
        return {
            'status': self.status().value,
            'traits': traits,
            'requests': {'succeeded': succeeded, 'failed': failed},
            'error_ratio': self.tracker.error_ratio(),
        }
