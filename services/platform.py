"""
Platform Client - Helix API access
==================================

Provides the live-status lookup used by rules having
`disable_on_offline` set. Results are cached for a short time as the
check runs for every message evaluated against such a rule.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

import httpx

from core.config import PlatformConfig
from core.exceptions import PlatformError
from core.logging import get_logger

logger = get_logger("services.platform")


class PlatformClient:
    """
    Minimal Helix API client.

    Attributes:
        config: Platform configuration (credentials, base URL, timeouts)
    """

    def __init__(
        self,
        config: PlatformConfig,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.config = config
        self._clock = clock or time.time
        self._cache: Dict[str, Tuple[float, bool]] = {}
        self._lock = threading.Lock()

        headers = {"Client-Id": config.client_id}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"

        self._client = httpx.Client(
            base_url=config.api_base,
            timeout=config.timeout,
            headers=headers,
            transport=transport,
        )

    def has_live_stream(self, channel: str) -> bool:
        """
        Check whether the channel is currently streaming.

        Args:
            channel: Channel login name, with or without leading `#`

        Raises:
            PlatformError: If the API request fails
        """
        login = channel.lstrip("#").lower()
        now = self._clock()

        with self._lock:
            cached = self._cache.get(login)
        if cached is not None and cached[0] > now:
            return cached[1]

        data = self._helix_get("/streams", {"user_login": login})
        live = any(stream.get("type") == "live" for stream in data)

        with self._lock:
            self._cache[login] = (now + self.config.cache_ttl, live)

        logger.debug("Fetched stream status", extra={"channel": login, "live": live})
        return live

    def _helix_get(self, path: str, params: Dict[str, str]) -> list:
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException:
            raise PlatformError("Platform API request timed out", {"path": path})
        except httpx.HTTPError as e:
            raise PlatformError(f"Platform API request failed: {e}", {"path": path})

        if response.status_code != 200:
            raise PlatformError(
                f"Platform API returned status {response.status_code}",
                {"path": path, "body": response.text[:200]}
            )

        try:
            return response.json().get("data", [])
        except ValueError as e:
            raise PlatformError(f"Decoding platform API response: {e}", {"path": path})

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def close(self) -> None:
        self._client.close()
