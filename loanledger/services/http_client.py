import logging
import time
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class StoreHTTPClient:
    """httpx client with connection pooling and read retries for the REST store."""

    def __init__(self, base_url: str, headers: Optional[Dict[str, str]] = None,
                 timeout: float = 10.0, read_retries: int = 1, backoff: float = 0.5,
                 transport: Optional[httpx.BaseTransport] = None):
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )
        self.read_retries = max(1, read_retries)
        self.backoff = backoff
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            limits=limits,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            follow_redirects=True,
            transport=transport,
        )

    def get(self, url: str, **kwargs) -> httpx.Response:
        """GET with exponential backoff on transport errors; the last error is re-raised."""
        for attempt in range(self.read_retries):
            try:
                return self._client.get(url, **kwargs)
            except httpx.RequestError as exc:
                if attempt < self.read_retries - 1:
                    wait_time = self.backoff * (2 ** attempt)
                    logger.warning("GET %s failed (%s); retrying in %.1fs", url, exc, wait_time)
                    time.sleep(wait_time)
                    continue
                raise
        raise RuntimeError("unreachable")  # pragma: no cover

    # Writes are sent exactly once.
    def post(self, url: str, **kwargs) -> httpx.Response:
        return self._client.post(url, **kwargs)

    def patch(self, url: str, **kwargs) -> httpx.Response:
        return self._client.patch(url, **kwargs)

    def delete(self, url: str, **kwargs) -> httpx.Response:
        return self._client.delete(url, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
