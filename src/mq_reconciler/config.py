"""Runtime configuration for the reconciler.

Each setting resolves from an explicit argument, then an environment
variable, then a default.
"""

import os
from dataclasses import dataclass

from .exceptions import ValidationError

REGION_ENV_VAR = "MQR_REGION"
ENDPOINT_URL_ENV_VAR = "MQR_ENDPOINT_URL"
POLL_INTERVAL_ENV_VAR = "MQR_POLL_INTERVAL"
POLL_DELAY_ENV_VAR = "MQR_POLL_DELAY"
CREATE_TIMEOUT_ENV_VAR = "MQR_CREATE_TIMEOUT"
UPDATE_TIMEOUT_ENV_VAR = "MQR_UPDATE_TIMEOUT"
DELETE_TIMEOUT_ENV_VAR = "MQR_DELETE_TIMEOUT"

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_POLL_DELAY = 10.0
DEFAULT_NOT_FOUND_CHECKS = 20
DEFAULT_TIMEOUT = 30 * 60.0


@dataclass(frozen=True)
class ReconcilerConfig:
    """
    Reconciler settings.

    Attributes:
        region: AWS region (None uses boto3 defaults)
        endpoint_url: Optional endpoint URL (for LocalStack or other compatible services)
        poll_interval: Seconds between status checks while waiting
        poll_delay: Seconds to wait before the first status check
        not_found_checks: Consecutive not-found results tolerated while waiting
            for a broker to appear
        create_timeout: Seconds to wait for a new broker to start running
        update_timeout: Seconds to wait for a reboot to complete
        delete_timeout: Seconds to wait for a broker to disappear
    """

    region: str | None = None
    endpoint_url: str | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_delay: float = DEFAULT_POLL_DELAY
    not_found_checks: int = DEFAULT_NOT_FOUND_CHECKS
    create_timeout: float = DEFAULT_TIMEOUT
    update_timeout: float = DEFAULT_TIMEOUT
    delete_timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        for name in ("poll_interval", "create_timeout", "update_timeout", "delete_timeout"):
            if getattr(self, name) <= 0:
                raise ValidationError(name, getattr(self, name), "Must be positive")
        if self.poll_delay < 0:
            raise ValidationError("poll_delay", self.poll_delay, "Must not be negative")

    @classmethod
    def from_env(
        cls,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> "ReconcilerConfig":
        """Build a config from explicit arguments, environment variables and defaults."""
        return cls(
            region=region or os.environ.get(REGION_ENV_VAR) or None,
            endpoint_url=endpoint_url or os.environ.get(ENDPOINT_URL_ENV_VAR) or None,
            poll_interval=_env_seconds(POLL_INTERVAL_ENV_VAR, DEFAULT_POLL_INTERVAL),
            poll_delay=_env_seconds(POLL_DELAY_ENV_VAR, DEFAULT_POLL_DELAY),
            create_timeout=_env_seconds(CREATE_TIMEOUT_ENV_VAR, DEFAULT_TIMEOUT),
            update_timeout=_env_seconds(UPDATE_TIMEOUT_ENV_VAR, DEFAULT_TIMEOUT),
            delete_timeout=_env_seconds(DELETE_TIMEOUT_ENV_VAR, DEFAULT_TIMEOUT),
        )


def _env_seconds(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(name, raw, "Must be a number of seconds") from None
