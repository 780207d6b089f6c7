"""
CMS Crawler API Client
======================

Authenticated aiohttp wrapper over the CMS ``/api/v1/crawler`` endpoints:
feed definitions, stored posts, last-crawled stamps and the priority
request queue.
"""

import asyncio
import json
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from ..models import CandidatePost, ExistingPost, FeedDefinition, QueueRequest
from ..utils.exceptions import (
    CMSError,
    ErrorCode,
    FeedNotFoundError,
    QueueError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from .http import create_session

API_PREFIX = "/api/v1/crawler"
BODY_EXCERPT_CHARS = 500


class CMSSource(Protocol):
    """Operations the crawler needs from the CMS."""

    async def list_feeds(self) -> Sequence[FeedDefinition]:
        ...

    async def get_feed(self, feed_id: str) -> FeedDefinition:
        ...

    async def list_posts(self, feed_id: str, limit: int) -> Sequence[ExistingPost]:
        ...

    async def create_post(self, post: CandidatePost) -> Optional[ExistingPost]:
        ...

    async def mark_crawled(self, feed_id: str) -> None:
        ...

    async def poll_request(self) -> Optional[QueueRequest]:
        ...

    async def ack_request(self, request_id: str) -> None:
        ...


class CMSClient:
    """CMS crawler API client.

    Either pass an existing session or let the client create one, in which
    case ``close()`` (or ``async with``) releases it.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        request_timeout: int = 30,
        session: Optional[aiohttp.ClientSession] = None,
        tenant: Optional[str] = None,
    ):
        self.base_url = URLValidator.normalize_base_url(base_url)
        self.access_token = access_token
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self.logger = get_logger_for_component("cms_client", tenant=tenant)

    async def __aenter__(self) -> "CMSClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = create_session(request_timeout=self.request_timeout)
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}/{path}"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        expected: Iterable[int] = (200,),
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
        error_cls: type = CMSError,
    ) -> Tuple[int, str]:
        """Send a request and return ``(status, body)``.

        Statuses outside ``expected`` raise ``error_cls`` carrying the status
        and a body excerpt.
        """
        url = self._url(path)
        try:
            async with self.session.request(
                method,
                url,
                headers=self._headers(),
                params=params,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                body = await response.text()
                status = response.status
        except asyncio.TimeoutError:
            raise error_cls(
                f"{method} {path} timed out after {self.request_timeout}s",
                endpoint=path,
                error_code=ErrorCode.CMS_NETWORK_ERROR,
            )
        except aiohttp.ClientError as e:
            raise error_cls(
                f"{method} {path} failed: {e}",
                endpoint=path,
                error_code=ErrorCode.CMS_NETWORK_ERROR,
            )

        if status not in expected:
            raise error_cls(
                f"API request failed with status {status}: {body[:BODY_EXCERPT_CHARS]}",
                endpoint=path,
                status=status,
                error_code=ErrorCode.CMS_UNEXPECTED_STATUS,
                recoverable=status >= 500,
            )

        return status, body

    @staticmethod
    def _decode(body: str, path: str, error_cls: type = CMSError) -> Any:
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise error_cls(
                f"Failed to decode response: {e}",
                endpoint=path,
                error_code=ErrorCode.CMS_INVALID_RESPONSE,
                recoverable=False,
            )

    @staticmethod
    def _validate_list(model, data: Any, path: str) -> List:
        if data is None:
            return []
        if not isinstance(data, list):
            raise CMSError(
                f"Expected a JSON array, got {type(data).__name__}",
                endpoint=path,
                error_code=ErrorCode.CMS_INVALID_RESPONSE,
                recoverable=False,
            )
        try:
            return [model.model_validate(item) for item in data]
        except PydanticValidationError as e:
            raise CMSError(
                f"Invalid response payload: {e}",
                endpoint=path,
                error_code=ErrorCode.CMS_INVALID_RESPONSE,
                recoverable=False,
            )

    async def list_feeds(self) -> List[FeedDefinition]:
        """All inspiration feed definitions."""
        path = "inspiration_feeds"
        _, body = await self._request("GET", path)
        feeds = self._validate_list(FeedDefinition, self._decode(body, path), path)
        self.logger.debug(f"Fetched {len(feeds)} feed definitions")
        return feeds

    async def get_feed(self, feed_id: str) -> FeedDefinition:
        """One feed definition.

        Raises:
            FeedNotFoundError: If the CMS answers 404
            CMSError: On any other failure
        """
        path = f"inspiration_feeds/{feed_id}"
        try:
            _, body = await self._request("GET", path)
        except CMSError as e:
            if e.status == 404:
                raise FeedNotFoundError(feed_id)
            raise

        data = self._decode(body, path)
        try:
            return FeedDefinition.model_validate(data)
        except PydanticValidationError as e:
            raise CMSError(
                f"Invalid feed payload: {e}",
                endpoint=path,
                error_code=ErrorCode.CMS_INVALID_RESPONSE,
                recoverable=False,
            )

    async def list_posts(self, feed_id: str, limit: int = 100) -> List[ExistingPost]:
        """Most recent stored posts of a feed, for deduplication."""
        path = "inspiration_feed_posts"
        _, body = await self._request(
            "GET", path, params={"feed_id": feed_id, "limit": str(limit)}
        )
        return self._validate_list(ExistingPost, self._decode(body, path), path)

    async def create_post(self, post: CandidatePost) -> Optional[ExistingPost]:
        """Store a candidate post, returning the created record when the CMS echoes it."""
        path = "inspiration_feed_posts"
        _, body = await self._request(
            "POST", path, expected=(200, 201), payload=post.to_payload()
        )
        if not body.strip():
            return None

        data = self._decode(body, path)
        if not isinstance(data, dict):
            return None
        try:
            return ExistingPost.model_validate(data)
        except PydanticValidationError:
            return None

    async def mark_crawled(self, feed_id: str) -> None:
        """Stamp the feed's last-crawled time to now."""
        await self._request("PUT", f"inspiration_feeds/{feed_id}/last-crawled")

    async def poll_request(self) -> Optional[QueueRequest]:
        """Next priority request, or None when the queue is empty.

        Raises:
            QueueError: On transport failure or an unusable response
        """
        path = "requests/poll"
        try:
            status, body = await self._request(
                "GET", path, expected=(200, 204), error_cls=QueueError
            )
        except QueueError as e:
            e.error_code = ErrorCode.QUEUE_POLL_FAILED
            raise

        if status == 204 or not body.strip():
            return None

        data = self._decode(body, path, error_cls=QueueError)
        if not data:
            return None
        try:
            return QueueRequest.model_validate(data)
        except PydanticValidationError as e:
            raise QueueError(
                f"Invalid queue request payload: {e}",
                endpoint=path,
                error_code=ErrorCode.QUEUE_POLL_FAILED,
                recoverable=False,
            )

    async def ack_request(self, request_id: str) -> None:
        """Remove a handled request from the queue.

        Raises:
            QueueError: If the CMS does not confirm the removal
        """
        try:
            await self._request("DELETE", f"requests/{request_id}", error_cls=QueueError)
        except QueueError as e:
            e.error_code = ErrorCode.QUEUE_ACK_FAILED
            raise
