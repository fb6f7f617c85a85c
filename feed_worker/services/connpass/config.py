"""connpass API config. Values come from Settings (CONNPASS_API_KEY, CONNPASS_BASE_URL) or ConnpassClient args."""
from feed_worker.core.constants import (
    CONNPASS_BASE_URL,
    CONNPASS_RATE_LIMIT_DELAY_SECONDS,
    HTTP_TIMEOUT_SECONDS,
)


class ConnpassConfig:
    """API key, base URL, request timeout and the minimum spacing between requests."""

    __slots__ = ("api_key", "base_url", "timeout", "rate_limit_delay")

    def __init__(
        self,
        *,
        api_key: str = "",
        base_url: str = CONNPASS_BASE_URL,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        rate_limit_delay: float = CONNPASS_RATE_LIMIT_DELAY_SECONDS,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limit_delay = max(0.0, rate_limit_delay)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self.api_key,
            "Accept": "application/json",
            "User-Agent": "feed-worker",
        }
