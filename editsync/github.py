"""
editsync - GitHub Contents API Client

Async HTTP client for the three remote operations the sync core consumes
(read file, write file with an optimistic-concurrency sha, read directory)
plus the token and repository checks used when adding credentials and
repositories.

Every HTTP failure is translated into a SyncError subclass so the executor
can classify it (see editsync.errors).
"""

import asyncio
import base64
import logging
import time
from collections import deque
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as SchemaError

from .config import SyncConfig
from .errors import (
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteValidationError,
    ServerError,
    SyncError,
)
from .models import RemoteFile
from .schemas import ContentResponse, EntryType, FileEntry, RepositoryInfo, WriteResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Rate Limiter
# =============================================================================

class RateLimiter:
    """Client-side sliding window limiter so we stay inside API quotas."""

    def __init__(self, requests_per_minute: int, requests_per_hour: int):
        self.rpm_limit = requests_per_minute
        self.rph_limit = requests_per_hour
        self.minute_window: deque[float] = deque()
        self.hour_window: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self.minute_window and self.minute_window[0] <= now - 60:
            self.minute_window.popleft()
        while self.hour_window and self.hour_window[0] <= now - 3600:
            self.hour_window.popleft()

    async def acquire(self) -> None:
        """Acquire permission to make a request, waiting if necessary."""
        async with self._lock:
            while True:
                now = time.time()
                self._prune(now)

                if len(self.minute_window) >= self.rpm_limit:
                    wait_time = self.minute_window[0] + 60 - now
                    logger.debug(f"Rate limit (minute): waiting {wait_time:.2f}s")
                elif len(self.hour_window) >= self.rph_limit:
                    wait_time = self.hour_window[0] + 3600 - now
                    logger.debug(f"Rate limit (hour): waiting {wait_time:.2f}s")
                else:
                    break

                await asyncio.sleep(max(wait_time, 0.01))

            self.minute_window.append(now)
            self.hour_window.append(now)

    @property
    def remaining_minute(self) -> int:
        """Remaining requests this minute."""
        minute_ago = time.time() - 60
        count = sum(1 for t in self.minute_window if t > minute_ago)
        return max(0, self.rpm_limit - count)

    @property
    def remaining_hour(self) -> int:
        """Remaining requests this hour."""
        hour_ago = time.time() - 3600
        count = sum(1 for t in self.hour_window if t > hour_ago)
        return max(0, self.rph_limit - count)


# =============================================================================
# GitHub Client
# =============================================================================

def split_full_name(full_name: str) -> tuple[str, str]:
    owner, _, name = full_name.partition("/")
    if not owner or not name:
        raise ValueError(f"Expected 'owner/repo', got {full_name!r}")
    return owner, name


class GitHubClient:
    """Client for the GitHub REST v3 contents API."""

    ACCEPT = "application/vnd.github.v3+json"

    def __init__(
        self,
        config: SyncConfig,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._token = token
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self.rate_limiter = RateLimiter(
            config.requests_per_minute,
            config.requests_per_hour,
        )

    # === Token ===

    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    # === Transport ===

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.api_base_url,
                timeout=httpx.Timeout(self.config.api_timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={
                    "Accept": self.ACCEPT,
                    "User-Agent": self.config.user_agent,
                },
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """Make an authenticated API request, translating failures to SyncError."""
        client = await self._get_http_client()

        headers = kwargs.pop("headers", {})
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        await self.rate_limiter.acquire()

        try:
            response = await client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {method} {endpoint}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Network error: {e}") from e

        self._raise_for_status(response)
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return response.reason_phrase

    @classmethod
    def _raise_for_status(cls, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = cls._error_message(response)

        if status == 401:
            raise AuthenticationError(f"Authentication failed: {message}")

        if status == 429 or (
            status == 403
            and (
                response.headers.get("X-RateLimit-Remaining") == "0"
                or "rate limit" in message.lower()
            )
        ):
            retry_after = response.headers.get("Retry-After")
            if retry_after is None and response.headers.get("X-RateLimit-Reset"):
                reset = int(response.headers["X-RateLimit-Reset"])
                retry_after = str(max(0, reset - int(time.time())))
            raise RateLimitError(
                f"Rate limit exceeded: {message}",
                retry_after=int(retry_after) if retry_after else None,
            )

        if status == 403:
            raise AuthenticationError(f"Access denied: {message}")
        if status == 404:
            raise NotFoundError(f"Not found: {message}")
        if status == 409:
            raise ConflictError(f"Version conflict: {message}")
        if status == 422:
            # Creating over an existing file, or a sha that no longer matches
            if "sha" in message.lower():
                raise ConflictError(f"Version conflict: {message}")
            raise RemoteValidationError(f"Rejected by remote: {message}")
        if status >= 500:
            raise ServerError(f"Server error {status}: {message}", status_code=status)

        raise RemoteValidationError(f"API error {status}: {message}")

    @staticmethod
    def _contents_endpoint(repo: str, path: str) -> str:
        owner, name = split_full_name(repo)
        return f"/repos/{owner}/{name}/contents/{quote(path.strip('/'), safe='/')}"

    @staticmethod
    def _parse(model, data: Any, what: str):
        try:
            return model.model_validate(data)
        except SchemaError as e:
            raise SyncError(f"Unexpected response for {what}: {e}") from e

    # === Remote contract ===

    async def read_file(self, repo: str, path: str) -> RemoteFile:
        """
        Read a file's content and sha.

        Raises:
            NotFoundError: If the path is absent or is not a file
        """
        response = await self._request("GET", self._contents_endpoint(repo, path))
        data = response.json()
        if isinstance(data, list):
            raise NotFoundError(f"Not a file: {path}")

        item = self._parse(ContentResponse, data, path)
        if item.type != EntryType.FILE:
            raise NotFoundError(f"Not a file: {path}")

        try:
            content = item.decoded()
        except (ValueError, UnicodeDecodeError) as e:
            raise RemoteValidationError(f"Cannot decode {path} as text: {e}") from e

        logger.debug(f"Read {repo}:{path} at {item.sha}")
        return RemoteFile(content=content, sha=item.sha)

    async def write_file(
        self,
        repo: str,
        path: str,
        content: str,
        base_sha: Optional[str] = None,
        message: Optional[str] = None,
    ) -> str:
        """
        Create or update a file.

        Args:
            repo: Repository full name (owner/repo)
            path: File path inside the repository
            content: New text content
            base_sha: Sha the write is based on; empty/None creates the file
            message: Commit message (defaults from config)

        Returns:
            The new blob sha

        Raises:
            ConflictError: If base_sha is stale
        """
        if message is None:
            template = (
                self.config.commit_message_template
                if base_sha
                else self.config.create_message_template
            )
            message = template.format(path=path)

        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if base_sha:
            body["sha"] = base_sha

        response = await self._request("PUT", self._contents_endpoint(repo, path), json=body)
        result = self._parse(WriteResponse, response.json(), path)
        logger.info(f"Wrote {repo}:{path} ({base_sha or 'new'} -> {result.content.sha})")
        return result.content.sha

    async def read_directory(self, repo: str, path: str = "") -> list[FileEntry]:
        """List a directory: directories first, then files, each by name."""
        owner, name = split_full_name(repo)
        if path.strip("/"):
            endpoint = self._contents_endpoint(repo, path)
        else:
            endpoint = f"/repos/{owner}/{name}/contents/"
        response = await self._request("GET", endpoint)
        data = response.json()
        if not isinstance(data, list):
            data = [data]

        entries = [self._parse(FileEntry, item, path or "/") for item in data]
        entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))
        return entries

    # === Account / repository checks ===

    async def validate_token(self) -> bool:
        """Check the current token against GET /user."""
        try:
            response = await self._request("GET", "/user")
        except AuthenticationError:
            return False
        return response.status_code == 200

    async def get_repository(self, owner: str, name: str) -> RepositoryInfo:
        """Fetch repository metadata; raises NotFoundError when inaccessible."""
        response = await self._request("GET", f"/repos/{owner}/{name}")
        return self._parse(RepositoryInfo, response.json(), f"{owner}/{name}")
