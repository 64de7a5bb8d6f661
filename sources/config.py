# config.py
"""
Runtime configuration for the infusion monitor.

The defaults below are the values the dashboard ships with; ``main.py``
overrides them from the command line and builds a :class:`MonitorConfig`.
"""

from dataclasses import dataclass
from importlib import metadata

from exceptions import ConfigException

# ----------------------------------------------------------------------
# Defaults – change only if your deployment differs
# ----------------------------------------------------------------------
DEFAULT_API_URL = "http://localhost:8000/api/data/"
DEFAULT_POLL_INTERVAL_S = 2.0       # one fetch‑and‑merge cycle every 2 s
DEFAULT_HISTORY_CAPACITY = 50       # points kept per bottle
DEFAULT_LOW_VOLUME_THRESHOLD = 20.0  # ml
DEFAULT_REQUEST_TIMEOUT_S = 10.0

# Rates whose magnitude is below this are shown as "--"
RATE_NOISE_FLOOR = 0.01


def get_version() -> str:
    """Return the installed package version."""
    try:
        return metadata.version("infusion-monitor")
    except metadata.PackageNotFoundError:
        return "Version unknown"


@dataclass(frozen=True)
class MonitorConfig:
    """
    Settings shared by the scheduler, the session and the views.

    Parameters
    ----------
    api_url : str
        Endpoint returning the full snapshot of all known bottles.
    poll_interval_s : float
        Seconds between the start of two poll cycles.
    history_capacity : int
        Maximum number of history points kept per bottle.
    low_volume_threshold : float
        Remaining volume (ml) under which a bottle is flagged.
    request_timeout_s : float
        Total timeout of one HTTP request.
    """

    api_url: str = DEFAULT_API_URL
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    low_volume_threshold: float = DEFAULT_LOW_VOLUME_THRESHOLD
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S

    def __post_init__(self) -> None:
        if not self.api_url:
            raise ConfigException("api_url must not be empty")
        if self.poll_interval_s <= 0:
            raise ConfigException(
                f"poll_interval_s must be > 0, got {self.poll_interval_s}"
            )
        if self.history_capacity < 1:
            raise ConfigException(
                f"history_capacity must be >= 1, got {self.history_capacity}"
            )
        if self.low_volume_threshold < 0:
            raise ConfigException(
                f"low_volume_threshold must be >= 0, got {self.low_volume_threshold}"
            )
        if self.request_timeout_s <= 0:
            raise ConfigException(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}"
            )
