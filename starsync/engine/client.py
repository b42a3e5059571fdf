"""HTTP client fetching one page of starred items at a time."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Protocol

import httpx
import structlog

from ..config import ApiConfig
from ..exceptions import RemoteError, RemoteErrorKind
from ..models import Page, RemoteItem

STAR_MEDIA_TYPE = "application/vnd.github.star+json"


class RemoteClient(Protocol):
    """Anything able to return page N of the remote collection."""

    def fetch_page(self, page_index: int) -> Page:
        """Fetch the 0-based page ``page_index``; raise RemoteError on failure."""


def _malformed(message: str) -> RemoteError:
    return RemoteError(RemoteErrorKind.MALFORMED, message)


def _require(mapping: Mapping[str, Any], key: str, context: str) -> Any:
    if key not in mapping:
        raise _malformed(f"missing field '{context}{key}'")
    return mapping[key]


def _require_str(mapping: Mapping[str, Any], key: str, context: str = "", nullable: bool = False) -> str | None:
    value = _require(mapping, key, context)
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        raise _malformed(f"field '{context}{key}' must be a string")
    return value


def _parse_datetime(value: str, field: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise _malformed(f"field '{field}' is not an ISO timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def decode_item(entry: Any) -> RemoteItem:
    """Validate one starred entry (``{"starred_at", "repo"}``) into a RemoteItem."""

    if not isinstance(entry, Mapping):
        raise _malformed("page element is not an object")
    starred_at = _require_str(entry, "starred_at")
    repo = _require(entry, "repo", "")
    if not isinstance(repo, Mapping):
        raise _malformed("field 'repo' must be an object")
    owner = _require(repo, "owner", "repo.")
    if not isinstance(owner, Mapping):
        raise _malformed("field 'repo.owner' must be an object")

    raw_id = _require(repo, "id", "repo.")
    if isinstance(raw_id, bool) or not isinstance(raw_id, (int, str)) or raw_id == "":
        raise _malformed("field 'repo.id' must be an integer or non-empty string")
    stars = _require(repo, "stargazers_count", "repo.")
    if isinstance(stars, bool) or not isinstance(stars, int):
        raise _malformed("field 'repo.stargazers_count' must be an integer")

    return RemoteItem(
        item_id=str(raw_id),
        name=_require_str(repo, "name", "repo."),
        description=_require_str(repo, "description", "repo.", nullable=True),
        url=_require_str(repo, "html_url", "repo."),
        starred_at=_parse_datetime(starred_at, "starred_at"),
        owner=_require_str(owner, "login", "repo.owner."),
        language=_require_str(repo, "language", "repo.", nullable=True),
        stars=stars,
    )


class GitHubStarsClient:
    """Fetch pages of the authenticated user's starred repositories."""

    def __init__(
        self,
        api_config: ApiConfig,
        token: str | None,
        logger: structlog.BoundLogger | None = None,
        now: Callable[[], float] = time.time,
    ) -> None:
        self.api_config = api_config
        self.token = token
        self.logger = logger or structlog.get_logger("starsync.client")
        self._now = now
        headers = {
            "Accept": STAR_MEDIA_TYPE,
            "User-Agent": api_config.user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=api_config.base_url,
            follow_redirects=True,
            timeout=api_config.timeout,
            headers=headers,
        )

    def close(self) -> None:
        self._client.close()

    def fetch_page(self, page_index: int) -> Page:
        if not self.token:
            raise RemoteError(RemoteErrorKind.UNAUTHORIZED, "no API token configured")
        params = {"per_page": self.api_config.per_page, "page": page_index + 1}
        try:
            response = self._client.request("GET", self.api_config.starred_path, params=params)
        except httpx.TimeoutException as exc:
            raise RemoteError(RemoteErrorKind.TRANSIENT, f"timeout fetching page {page_index}") from exc
        except httpx.TransportError as exc:
            raise RemoteError(RemoteErrorKind.TRANSIENT, f"transport error: {exc}") from exc

        error = self._classify(response)
        if error is not None:
            raise error

        try:
            payload = response.json()
        except ValueError as exc:
            raise _malformed(f"page {page_index} body is not JSON") from exc
        if not isinstance(payload, list):
            raise _malformed(f"page {page_index} body is not a list")
        items = tuple(decode_item(entry) for entry in payload)
        has_more, last_index = self._pagination(response, len(items))
        self.logger.debug(
            "page_received",
            page=page_index,
            items=len(items),
            has_more=has_more,
            last_index=last_index,
        )
        return Page(index=page_index, items=items, has_more=has_more, last_index=last_index)

    # ------------------------------------------------------------------
    def _classify(self, response: httpx.Response) -> RemoteError | None:
        status = response.status_code
        if 200 <= status < 300:
            return None
        if status == 429 or (status == 403 and self._is_rate_limited(response.headers)):
            return RemoteError(
                RemoteErrorKind.RATE_LIMITED,
                f"remote throttled request (status {status})",
                retry_after=self._retry_after(response.headers),
                status_code=status,
            )
        if status in (401, 403):
            return RemoteError(
                RemoteErrorKind.UNAUTHORIZED,
                f"credential rejected (status {status})",
                status_code=status,
            )
        if status >= 500:
            return RemoteError(
                RemoteErrorKind.TRANSIENT, f"server error {status}", status_code=status
            )
        return RemoteError(
            RemoteErrorKind.MALFORMED, f"unexpected status {status}", status_code=status
        )

    @staticmethod
    def _is_rate_limited(headers: httpx.Headers) -> bool:
        return headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers

    def _retry_after(self, headers: httpx.Headers) -> float | None:
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                pass
        reset = headers.get("x-ratelimit-reset")
        if reset:
            try:
                return max(float(reset) - self._now(), 0.0)
            except ValueError:
                return None
        return None

    def _pagination(self, response: httpx.Response, item_count: int) -> tuple[bool, int | None]:
        if item_count == 0:
            return False, None
        if "link" not in response.headers:
            return item_count >= self.api_config.per_page, None
        links = response.links
        last_index = None
        last = links.get("last")
        if last and last.get("url"):
            page_param = httpx.URL(last["url"]).params.get("page")
            if page_param and page_param.isdigit():
                last_index = int(page_param) - 1
        return "next" in links, last_index


__all__ = ["GitHubStarsClient", "RemoteClient", "STAR_MEDIA_TYPE", "decode_item"]
