"""
Remote Configuration Sync

Fetches the raw value of a single key from the remote store.

Backends:
- etcd (v2 keys API): GET {endpoint}/v2/keys{path} -> node.value

Reuses a single HTTP client across fetches so the re-fetch loop does not
pay connection setup on every tick.
"""

import httpx

from cfgsync.common.config import HTTP_TIMEOUT_S, RemoteDescriptor
from cfgsync.common.exceptions import SourceUnreadable, UnsupportedProvider
from cfgsync.common.logging_setup import get_service_logger

logger = get_service_logger("config.sync")


class RemoteSync:
    """
    Reads configuration content from a remote provider.

    Only the raw value is returned; decoding is the store's job.
    """

    def __init__(
        self,
        descriptor: RemoteDescriptor,
        timeout: float = HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if descriptor.provider != "etcd":
            raise UnsupportedProvider(descriptor.provider, descriptor.provider)

        self.descriptor = descriptor
        self.timeout = timeout
        self._transport = transport
        # Reusable HTTP client - avoids connection overhead per request
        self._client: httpx.AsyncClient | None = None
        # etcd modifiedIndex of the last value fetched
        self.last_index: int | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.descriptor.endpoint,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> bytes:
        """
        Fetch the raw config value.

        Returns:
            Value bytes as stored in the remote key

        Raises:
            SourceUnreadable: Network error, HTTP error, or key is not a value node
        """
        source = str(self.descriptor)
        client = await self._get_client()

        try:
            response = await client.get(f"/v2/keys{self.descriptor.path}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceUnreadable(
                source, f"HTTP {e.response.status_code} from {self.descriptor.endpoint}"
            ) from e
        except httpx.HTTPError as e:
            raise SourceUnreadable(source, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise SourceUnreadable(source, f"invalid etcd response: {e}") from e

        node = data.get("node") if isinstance(data, dict) else None
        if not isinstance(node, dict) or node.get("dir") or not isinstance(node.get("value"), str):
            raise SourceUnreadable(source, "key has no value")

        self.last_index = node.get("modifiedIndex")
        logger.debug(
            f"Fetched {self.descriptor.path} (index: {self.last_index})",
            extra={"path": self.descriptor.path, "index": self.last_index},
        )

        return node["value"].encode("utf-8")
