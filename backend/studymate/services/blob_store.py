"""Blob storage access.

File bytes live in an external object store and are addressed by URL. The
URLs are capability links, so they are fetched server-side and never handed
to clients. Responses are streamed chunk by chunk to keep memory bounded
regardless of file size.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from urllib.parse import urlsplit

import httpx

from studymate.services.exceptions import UpstreamFetchError

logger = logging.getLogger(__name__)


class BlobStream(ABC):
    """An open upstream object being relayed to a client."""

    content_type: str | None
    content_length: int | None

    @abstractmethod
    def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the object's bytes; closes the upstream when exhausted."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the upstream connection. Safe to call more than once."""


class BlobStore(ABC):
    """Interface for fetching stored files."""

    @abstractmethod
    async def open(self, url: str) -> BlobStream:
        """Start fetching ``url``.

        Raises:
            UpstreamFetchError: on network failure, timeout or non-2xx status
        """


class HttpBlobStream(BlobStream):
    """Streams an httpx response body."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        chunk_size: int,
    ):
        self._client = client
        self._response = response
        self._chunk_size = chunk_size
        self._closed = False
        self.content_type = response.headers.get("content-type")
        # aiter_bytes() decodes Content-Encoding, so an encoded length is meaningless
        length = response.headers.get("content-length")
        encoding = response.headers.get("content-encoding", "identity").lower()
        if length and length.isdigit() and encoding == "identity":
            self.content_length = int(length)
        else:
            self.content_length = None

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes(self._chunk_size):
                yield chunk
        except httpx.HTTPError as e:
            # Headers are already sent; the client sees a truncated body
            logger.error("Blob stream interrupted: %s", type(e).__name__)
            raise UpstreamFetchError("Blob stream interrupted") from e
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()


class HttpBlobStore(BlobStore):
    """Fetches blobs with plain HTTP GET.

    Args:
        timeout: Seconds allowed for connect/read/write/pool each
        chunk_size: Bytes per streamed chunk
        allowed_hosts: If non-empty, only these hosts may be fetched
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
        allowed_hosts: list[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._allowed_hosts = {h.lower() for h in allowed_hosts or []}
        self._transport = transport

    def _check_url(self, url: str) -> None:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise UpstreamFetchError("Unsupported file URL")
        if self._allowed_hosts and parts.hostname.lower() not in self._allowed_hosts:
            raise UpstreamFetchError("File URL host is not allowed")

    async def open(self, url: str) -> BlobStream:
        self._check_url(url)

        client = httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        try:
            response = await client.send(client.build_request("GET", url), stream=True)
        except httpx.TimeoutException as e:
            await client.aclose()
            logger.error("Blob fetch timed out after %ss", self._timeout)
            raise UpstreamFetchError("Blob fetch timed out") from e
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error("Blob fetch failed: %s", type(e).__name__)
            raise UpstreamFetchError(f"Blob fetch failed: {type(e).__name__}") from e

        if not response.is_success:
            await response.aclose()
            await client.aclose()
            logger.error("Blob store returned HTTP %s", response.status_code)
            raise UpstreamFetchError(
                f"Blob store returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        return HttpBlobStream(client, response, self._chunk_size)
