"""WebDAV storage provider."""

from __future__ import annotations

import logging
import random
import time
import xml.etree.ElementTree as ET
from typing import Any
from urllib.parse import quote, unquote, urlparse

import httpx

from ..exceptions import (
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
    StorageProviderError,
    TransientBackendError,
)
from ..settings import WebDAVSettings
from ..sync.paths import normalize_path
from ..utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, parse_http_date
from .base import (
    ConnectionStatus,
    FileMetadata,
    QuotaInfo,
    RemoteEntry,
    StorageProvider,
)
from .rate_limiter import RequestRateLimiter

logger = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<D:propfind xmlns:D="DAV:">
  <D:prop>
    <D:resourcetype/>
    <D:getlastmodified/>
    <D:getcontentlength/>
    <D:getcontenttype/>
    <D:getetag/>
  </D:prop>
</D:propfind>"""

QUOTA_BODY = """<?xml version="1.0" encoding="utf-8" ?>
<D:propfind xmlns:D="DAV:">
  <D:prop>
    <D:quota-available-bytes/>
    <D:quota-used-bytes/>
  </D:prop>
</D:propfind>"""

# Status codes for which a Depth: infinity PROPFIND is retried level by level
INFINITY_UNSUPPORTED = (400, 403, 501, 507)


def is_jianguoyun(server_url: str) -> bool:
    """Check whether a server URL belongs to the Jianguoyun service."""
    return "jianguoyun" in server_url.lower()


class WebDAVProvider(StorageProvider):
    """Storage provider speaking WebDAV over httpx.

    Transient failures (locks, rate limits, 5xx, network errors) are
    retried with exponential backoff and jitter before the mapped
    exception is raised.
    """

    provider_type = "webdav"
    missing_directory_is_empty = True
    folder_marker_fallback = True

    def __init__(
        self,
        settings: WebDAVSettings,
        provider_id: str = "webdav",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        rate_limiter: RequestRateLimiter | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the WebDAV provider.

        Args:
            settings: Server URL, credentials and pacing settings
            provider_id: Identifier used in logs and settings
            max_retries: Retry attempts for transient errors
            retry_delay: Initial delay between retries in seconds
            rate_limiter: Request pacer; Jianguoyun servers get one by default
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(provider_id, "WebDAV")
        self.settings = settings
        self.base_url = settings.server_url.rstrip("/")
        self.root_path = unquote(urlparse(self.base_url).path).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = settings.timeout
        if is_jianguoyun(self.base_url):
            # MKCOL is unreliable there, folders come from marker files
            self.supports_native_folders = False
            if rate_limiter is None:
                rate_limiter = RequestRateLimiter(
                    settings.is_paid_user, settings.request_delay.value
                )
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client: httpx.Client | None = None

    # =========================
    # HTTP plumbing
    # =========================

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            kwargs: dict[str, Any] = {
                "auth": (self.settings.username, self.settings.password),
                "timeout": httpx.Timeout(self.timeout),
                "follow_redirects": True,
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.Client(**kwargs)
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _url(self, path: str, folder: bool = False) -> str:
        normalized = normalize_path(path)
        url = f"{self.base_url}/{quote(normalized, safe='/')}"
        if folder and not url.endswith("/"):
            url += "/"
        return url

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _error_for_status(
        self, response: httpx.Response, path: str
    ) -> StorageProviderError:
        """Map an HTTP error status to a provider exception."""
        status = response.status_code
        where = f"{response.request.method} {path or '/'}"
        if status in (401, 403):
            return AuthenticationError(
                f"Access denied ({status}) for {where}, check username and password"
            )
        if status == 404:
            return NotFoundError(f"Not found: {where}")
        if status == 409:
            return ConflictError(
                f"Conflict for {where}, parent folder is missing",
                parent_missing=True,
            )
        if status in (405, 412):
            return ConflictError(f"Resource already exists or not allowed: {where}")
        if status == 429:
            retry_after = response.headers.get("Retry-After")
            delay = None
            if retry_after and retry_after.isdigit():
                delay = float(retry_after)
            return RateLimitError(f"Rate limit exceeded for {where}", retry_after=delay)
        if status == 423:
            return TransientBackendError(f"Resource is locked: {where}", code="LOCKED")
        if status == 507:
            return QuotaExceededError(f"Insufficient storage for {where}")
        if status >= 500 and status != 501:
            return TransientBackendError(
                f"Server error {status} for {where}", code=f"HTTP_{status}"
            )
        return StorageProviderError(
            f"Request failed with status {status} for {where}", code=f"HTTP_{status}"
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        folder: bool = False,
        check: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Args:
            method: HTTP or WebDAV method
            path: Remote path relative to the server URL
            folder: Address the path as a collection (trailing slash)
            check: Raise the mapped exception for error statuses
            **kwargs: Additional arguments passed to httpx

        Returns:
            The response

        Raises:
            StorageProviderError: If the request fails after all retries
        """
        url = self._url(path, folder=folder)
        client = self._get_client()
        last_error: StorageProviderError | None = None

        for attempt in range(self.max_retries + 1):
            if self.rate_limiter is not None:
                self.rate_limiter.acquire()
            try:
                response = client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                last_error = ProviderTimeoutError(
                    f"{method} {path or '/'} timed out", original=e
                )
            except httpx.RequestError as e:
                last_error = NetworkError(f"Network error: {e}", original=e)
            else:
                if response.status_code < 400:
                    return response
                error = self._error_for_status(response, path)
                if not isinstance(error, TransientBackendError):
                    if not check:
                        return response
                    raise error
                last_error = error

            if attempt < self.max_retries:
                delay = self._calculate_retry_delay(attempt)
                if isinstance(last_error, TransientBackendError):
                    delay = last_error.retry_after or delay
                logger.debug(
                    f"{method} {path or '/'} failed "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}), "
                    f"retrying in {delay:.1f}s: {last_error}"
                )
                time.sleep(delay)

        if last_error:
            raise last_error
        raise StorageProviderError(f"{method} {path} failed after all retry attempts")

    # =========================
    # Response parsing
    # =========================

    def _href_to_path(self, href: str) -> str:
        path = unquote(urlparse(href).path)
        if self.root_path and path.startswith(self.root_path):
            path = path[len(self.root_path) :]
        return normalize_path(path)

    def _parse_multistatus(self, text: str) -> list[FileMetadata]:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise StorageProviderError(
                f"Invalid PROPFIND response: {e}", code="PARSE_ERROR", original=e
            ) from e

        entries = []
        for response in root.iter(f"{DAV_NS}response"):
            href = response.findtext(f"{DAV_NS}href") or ""
            path = self._href_to_path(href)
            prop = None
            for propstat in response.findall(f"{DAV_NS}propstat"):
                status = propstat.findtext(f"{DAV_NS}status") or ""
                if " 200 " in status or status.endswith(" 200") or not status:
                    prop = propstat.find(f"{DAV_NS}prop")
                    break
            if prop is None:
                continue

            resource_type = prop.find(f"{DAV_NS}resourcetype")
            is_folder = (
                resource_type is not None
                and resource_type.find(f"{DAV_NS}collection") is not None
            )
            length = prop.findtext(f"{DAV_NS}getcontentlength") or "0"
            etag = prop.findtext(f"{DAV_NS}getetag")
            entries.append(
                FileMetadata(
                    path=path,
                    name=path.rsplit("/", 1)[-1] if path else "",
                    is_folder=is_folder,
                    size=0 if is_folder else int(length) if length.isdigit() else 0,
                    modified_time=parse_http_date(
                        prop.findtext(f"{DAV_NS}getlastmodified")
                    ),
                    etag=etag.strip('"') if etag else None,
                    content_type=prop.findtext(f"{DAV_NS}getcontenttype"),
                )
            )
        return entries

    def _propfind(self, path: str, depth: str, check: bool = True) -> httpx.Response:
        return self._request(
            "PROPFIND",
            path,
            folder=depth != "0",
            check=check,
            headers={"Depth": depth, "Content-Type": "application/xml; charset=utf-8"},
            content=PROPFIND_BODY.encode("utf-8"),
        )

    # =========================
    # Provider operations
    # =========================

    def connect(self) -> bool:
        """Check the server and credentials.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        self.status = ConnectionStatus.CONNECTING
        try:
            self._propfind("", "0")
        except AuthenticationError:
            self.status = ConnectionStatus.ERROR
            raise
        except StorageProviderError as e:
            logger.warning(f"WebDAV connection failed: {e}")
            self.status = ConnectionStatus.ERROR
            return False
        self.status = ConnectionStatus.CONNECTED
        logger.debug(f"Connected to WebDAV server {self.base_url}")
        return True

    def disconnect(self) -> None:
        self.close()
        super().disconnect()

    def test_connection(self) -> bool:
        try:
            self._propfind("", "0")
        except StorageProviderError as e:
            logger.info(f"WebDAV connection test failed: {e.user_message()}")
            return False
        return True

    def list_files(self, path: str = "", recursive: bool = True) -> list[RemoteEntry]:
        """List entries below a folder.

        A missing folder gives an empty list. Servers that refuse
        ``Depth: infinity`` are walked one level at a time.
        """
        base = normalize_path(path)
        try:
            if recursive:
                response = self._propfind(base, "infinity", check=False)
                if response.status_code in INFINITY_UNSUPPORTED:
                    logger.debug(
                        f"Depth: infinity refused ({response.status_code}), "
                        "listing level by level"
                    )
                    return self._list_manually(base)
                if response.status_code >= 400:
                    raise self._error_for_status(response, base)
                entries = self._children(base, self._parse_multistatus(response.text))
                if self._looks_shallow(base, entries):
                    logger.debug("Server ignored Depth: infinity, listing manually")
                    return self._list_manually(base)
                return entries

            response = self._propfind(base, "1")
            return self._children(base, self._parse_multistatus(response.text))
        except NotFoundError:
            logger.debug(f"Remote folder {base or '/'} does not exist")
            return []

    def _children(self, base: str, entries: list[FileMetadata]) -> list[RemoteEntry]:
        prefix = base + "/" if base else ""
        return [e for e in entries if e.path != base and e.path.startswith(prefix)]

    @staticmethod
    def _looks_shallow(base: str, entries: list[RemoteEntry]) -> bool:
        # Folders present but nothing deeper than the first level
        depth = base.count("/") + 2 if base else 1
        has_folders = any(e.is_folder for e in entries)
        return has_folders and all(e.path.count("/") + 1 <= depth for e in entries)

    def _list_manually(self, base: str) -> list[RemoteEntry]:
        result: list[RemoteEntry] = []
        pending = [base]
        while pending:
            current = pending.pop(0)
            response = self._propfind(current, "1")
            level = self._parse_multistatus(response.text)
            for entry in self._children(current, level):
                result.append(entry)
                if entry.is_folder:
                    pending.append(entry.path)
        return result

    def upload_file(self, path: str, content: bytes, mtime: int | None = None) -> None:
        headers = {"Content-Type": "application/octet-stream"}
        if mtime:
            # Nextcloud and ownCloud keep this as the file modification time
            headers["X-OC-Mtime"] = str(int(mtime / 1000))
        self._request("PUT", path, headers=headers, content=content)
        logger.debug(f"Uploaded {len(content)} bytes to {path}")

    def download_file_content(self, path: str) -> bytes:
        return self._request("GET", path).content

    def delete_file(self, path: str) -> None:
        try:
            self._request("DELETE", path)
        except NotFoundError:
            logger.debug(f"Delete skipped, already absent: {path}")

    def delete_folder(self, path: str) -> None:
        try:
            self._request("DELETE", path, folder=True)
        except NotFoundError:
            logger.debug(f"Delete skipped, folder already absent: {path}")

    def create_folder(self, path: str) -> None:
        response = self._request("MKCOL", path, folder=True, check=False)
        if response.status_code in (200, 201, 204):
            return
        if response.status_code == 405:
            # MKCOL on an existing collection
            logger.debug(f"Folder already exists: {path}")
            return
        raise self._error_for_status(response, path)

    def folder_exists(self, path: str) -> bool:
        try:
            response = self._propfind(path, "0")
        except NotFoundError:
            return False
        entries = self._parse_multistatus(response.text)
        return bool(entries) and entries[0].is_folder

    def move_file(self, source: str, destination: str) -> None:
        self._request(
            "MOVE",
            source,
            headers={"Destination": self._url(destination), "Overwrite": "T"},
        )

    def get_file_metadata(self, path: str) -> FileMetadata:
        response = self._propfind(path, "0")
        entries = self._parse_multistatus(response.text)
        if not entries:
            raise NotFoundError(f"No metadata returned for {path}")
        return entries[0]

    def get_quota(self) -> QuotaInfo:
        response = self._request(
            "PROPFIND",
            "",
            folder=True,
            headers={"Depth": "0", "Content-Type": "application/xml; charset=utf-8"},
            content=QUOTA_BODY.encode("utf-8"),
        )
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as e:
            raise StorageProviderError(
                f"Invalid quota response: {e}", code="PARSE_ERROR", original=e
            ) from e

        def read(tag: str) -> int:
            text = root.findtext(f".//{DAV_NS}{tag}")
            return int(text) if text and text.strip().isdigit() else -1

        used = read("quota-used-bytes")
        available = read("quota-available-bytes")
        total = used + available if used >= 0 and available >= 0 else -1
        return QuotaInfo(used=used, available=available, total=total)
