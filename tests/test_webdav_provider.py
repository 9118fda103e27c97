"""Unit tests for the WebDAV storage provider."""

from email.utils import formatdate
from unittest.mock import patch
from urllib.parse import quote, unquote, urlparse

import httpx
import pytest

from pycloudsync.exceptions import (
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    QuotaExceededError,
    StorageProviderError,
    TransientBackendError,
)
from pycloudsync.providers.base import ConnectionStatus
from pycloudsync.providers.webdav import WebDAVProvider, is_jianguoyun
from pycloudsync.settings import WebDAVSettings

SERVER = "https://dav.example.com/remote.php/dav"
ROOT = "/remote.php/dav"


class FakeDAVServer:
    """In-memory WebDAV server for httpx.MockTransport."""

    def __init__(self, refuse_infinity=False, ignore_depth=False):
        self.files = {}
        self.folders = {""}
        self.mtimes = {}
        self.refuse_infinity = refuse_infinity
        self.ignore_depth = ignore_depth
        self.requests = []

    def _path(self, request):
        path = unquote(urlparse(str(request.url)).path)
        return path[len(ROOT) :].strip("/")

    @staticmethod
    def _parent(path):
        return path.rsplit("/", 1)[0] if "/" in path else ""

    def _exists(self, path):
        return path in self.files or path in self.folders

    def _response_xml(self, path):
        href = quote(f"{ROOT}/{path}" if path else ROOT + "/")
        if path in self.folders:
            props = "<D:resourcetype><D:collection/></D:resourcetype>"
        else:
            props = (
                "<D:resourcetype/>"
                f"<D:getcontentlength>{len(self.files[path])}</D:getcontentlength>"
                f"<D:getetag>\"etag-{len(self.files[path])}\"</D:getetag>"
            )
        modified = formatdate(self.mtimes.get(path, 1_700_000_000), usegmt=True)
        return (
            f"<D:response><D:href>{href}</D:href><D:propstat><D:prop>{props}"
            f"<D:getlastmodified>{modified}</D:getlastmodified>"
            "</D:prop><D:status>HTTP/1.1 200 OK</D:status></D:propstat>"
            "</D:response>"
        )

    def _propfind(self, path, depth):
        if not self._exists(path):
            return httpx.Response(404)
        if depth == "infinity" and self.refuse_infinity:
            return httpx.Response(403)
        if self.ignore_depth and depth == "infinity":
            depth = "1"

        paths = [path]
        if depth != "0" and path in self.folders:
            prefix = path + "/" if path else ""
            for candidate in sorted(self.folders | set(self.files)):
                if candidate == path or not candidate.startswith(prefix):
                    continue
                if depth == "1" and "/" in candidate[len(prefix) :]:
                    continue
                paths.append(candidate)

        body = (
            '<?xml version="1.0"?><D:multistatus xmlns:D="DAV:">'
            + "".join(self._response_xml(p) for p in paths)
            + "</D:multistatus>"
        )
        return httpx.Response(207, text=body)

    def __call__(self, request):
        path = self._path(request)
        method = request.method
        self.requests.append((method, path, request.headers))

        if method == "PROPFIND":
            if b"quota" in request.content:
                return httpx.Response(
                    207,
                    text=(
                        '<D:multistatus xmlns:D="DAV:"><D:response><D:propstat>'
                        "<D:prop><D:quota-used-bytes>100</D:quota-used-bytes>"
                        "<D:quota-available-bytes>900</D:quota-available-bytes>"
                        "</D:prop></D:propstat></D:response></D:multistatus>"
                    ),
                )
            return self._propfind(path, request.headers.get("Depth", "1"))
        if method == "MKCOL":
            if self._exists(path):
                return httpx.Response(405)
            if self._parent(path) not in self.folders:
                return httpx.Response(409)
            self.folders.add(path)
            return httpx.Response(201)
        if method == "PUT":
            if self._parent(path) not in self.folders:
                return httpx.Response(409)
            self.files[path] = request.content
            if "X-OC-Mtime" in request.headers:
                self.mtimes[path] = int(request.headers["X-OC-Mtime"])
            return httpx.Response(201)
        if method == "GET":
            if path not in self.files:
                return httpx.Response(404)
            return httpx.Response(200, content=self.files[path])
        if method == "DELETE":
            if not self._exists(path):
                return httpx.Response(404)
            prefix = path + "/"
            self.files = {
                p: c
                for p, c in self.files.items()
                if p != path and not p.startswith(prefix)
            }
            self.folders = {
                p for p in self.folders if p != path and not p.startswith(prefix)
            }
            return httpx.Response(204)
        if method == "MOVE":
            destination = unquote(urlparse(request.headers["Destination"]).path)
            destination = destination[len(ROOT) :].strip("/")
            if path not in self.files:
                return httpx.Response(404)
            self.files[destination] = self.files.pop(path)
            return httpx.Response(201)
        return httpx.Response(501)


def make_provider(handler, server_url=SERVER, **kwargs):
    """Create a provider talking to a mock transport."""
    settings = WebDAVSettings(
        enabled=True, username="user", password="secret", server_url=server_url
    )
    return WebDAVProvider(
        settings, retry_delay=0, transport=httpx.MockTransport(handler), **kwargs
    )


def status_handler(status, headers=None):
    """Handler answering every request with one status code."""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, headers=headers or {})

    handler.calls = calls
    return handler


@pytest.fixture
def server():
    """Provide an empty fake WebDAV server."""
    return FakeDAVServer()


@pytest.fixture
def provider(server):
    """Provide a provider backed by the fake server."""
    return make_provider(server)


class TestConnection:
    """Tests for connect and test_connection."""

    def test_connect(self, provider):
        """Test connecting to a reachable server."""
        assert provider.connect() is True
        assert provider.get_status() == ConnectionStatus.CONNECTED

    def test_connect_auth_failure(self):
        """Test rejected credentials raise AuthenticationError."""
        provider = make_provider(status_handler(401))
        with pytest.raises(AuthenticationError):
            provider.connect()
        assert provider.get_status() == ConnectionStatus.ERROR

    def test_test_connection_false_on_error(self):
        """Test connection tests report failures without raising."""
        assert make_provider(status_handler(401)).test_connection() is False

    def test_basic_auth_sent(self, server, provider):
        """Test credentials are sent with basic auth."""
        provider.test_connection()
        headers = server.requests[0][2]
        assert headers["Authorization"].startswith("Basic ")

    def test_disconnect_closes_client(self, provider):
        """Test disconnect releases the client."""
        provider.connect()
        provider.disconnect()
        assert provider._client is None
        assert provider.get_status() == ConnectionStatus.DISCONNECTED


class TestStatusMapping:
    """Tests for mapping HTTP status codes to provider errors."""

    @pytest.mark.parametrize(
        "status,error_class",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (404, NotFoundError),
            (405, ConflictError),
            (409, ConflictError),
            (412, ConflictError),
            (507, QuotaExceededError),
        ],
    )
    def test_non_transient_status(self, status, error_class):
        """Test non transient errors are raised without retrying."""
        handler = status_handler(status)
        provider = make_provider(handler)
        with pytest.raises(error_class):
            provider.download_file_content("a.md")
        assert len(handler.calls) == 1

    def test_conflict_409_means_parent_missing(self):
        """Test 409 reports a missing parent."""
        provider = make_provider(status_handler(409))
        with pytest.raises(ConflictError) as exc_info:
            provider.upload_file("a/b.md", b"x")
        assert exc_info.value.parent_missing is True

    @pytest.mark.parametrize("status", [423, 500, 502, 503])
    def test_transient_status_retried(self, status):
        """Test transient errors are retried before they are raised."""
        handler = status_handler(status)
        provider = make_provider(handler, max_retries=2)
        with pytest.raises(TransientBackendError):
            provider.download_file_content("a.md")
        assert len(handler.calls) == 3

    def test_rate_limit_honours_retry_after(self):
        """Test 429 waits for the time the server asks for."""
        handler = status_handler(429, {"Retry-After": "7"})
        provider = make_provider(handler, max_retries=1)
        with patch("pycloudsync.providers.webdav.time.sleep") as mock_sleep:
            with pytest.raises(TransientBackendError):
                provider.download_file_content("a.md")
        mock_sleep.assert_called_once_with(7.0)

    def test_not_implemented_is_not_retried(self):
        """Test 501 is a plain storage error."""
        handler = status_handler(501)
        provider = make_provider(handler)
        with pytest.raises(StorageProviderError) as exc_info:
            provider.download_file_content("a.md")
        assert not isinstance(exc_info.value, TransientBackendError)
        assert len(handler.calls) == 1

    def test_network_error(self):
        """Test connection errors become NetworkError after retries."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = make_provider(handler, max_retries=1)
        with pytest.raises(NetworkError):
            provider.download_file_content("a.md")

    def test_retry_delay_jitter(self, provider):
        """Test backoff doubles with at most 25% jitter."""
        provider.retry_delay = 1.0
        for attempt in range(3):
            delay = provider._calculate_retry_delay(attempt)
            assert 0.75 * 2**attempt <= delay <= 1.25 * 2**attempt

    def test_invalid_xml(self):
        """Test an unparsable PROPFIND answer is a parse error."""

        def handler(request):
            return httpx.Response(207, text="<not-xml")

        provider = make_provider(handler)
        with pytest.raises(StorageProviderError) as exc_info:
            provider.get_file_metadata("a.md")
        assert exc_info.value.code == "PARSE_ERROR"


class TestFileOperations:
    """Tests for file operations against the fake server."""

    def test_upload_download(self, server, provider):
        """Test an uploaded file can be downloaded."""
        provider.upload_file("a.md", b"hello")
        assert server.files["a.md"] == b"hello"
        assert provider.download_file_content("a.md") == b"hello"

    def test_upload_sends_mtime(self, server, provider):
        """Test the modification time is sent in seconds."""
        provider.upload_file("a.md", b"hello", mtime=1_700_000_123_456)
        assert server.mtimes["a.md"] == 1_700_000_123
        assert provider.get_file_metadata("a.md").mtime == 1_700_000_123_000

    def test_paths_are_quoted(self, server, provider):
        """Test names with spaces and unicode survive the round trip."""
        provider.upload_file("my note ✓.md", b"x")
        assert "my note ✓.md" in server.files
        assert [e.path for e in provider.list_files()] == ["my note ✓.md"]

    def test_delete_missing_is_success(self, provider):
        """Test deleting absent files and folders does not raise."""
        provider.delete_file("missing.md")
        provider.delete_folder("missing")

    def test_move_file(self, server, provider):
        """Test MOVE renames a file."""
        provider.upload_file("a.md", b"x")
        provider.move_file("a.md", "b.md")
        assert set(server.files) == {"b.md"}

    def test_metadata(self, provider):
        """Test metadata of a file."""
        provider.upload_file("a.md", b"hello")
        metadata = provider.get_file_metadata("a.md")
        assert metadata.name == "a.md"
        assert metadata.size == 5
        assert metadata.etag == "etag-5"
        assert metadata.is_folder is False

    def test_quota(self, provider):
        """Test quota values are read from the quota properties."""
        quota = provider.get_quota()
        assert (quota.used, quota.available, quota.total) == (100, 900, 1000)


class TestFolders:
    """Tests for folder creation and detection."""

    def test_create_folder(self, server, provider):
        """Test MKCOL creates a folder."""
        provider.create_folder("notes")
        assert "notes" in server.folders
        assert provider.folder_exists("notes") is True

    def test_create_existing_folder(self, provider):
        """Test MKCOL answering 405 counts as success."""
        provider.create_folder("notes")
        provider.create_folder("notes")

    def test_create_folder_missing_parent(self, provider):
        """Test a missing parent raises a parent conflict."""
        with pytest.raises(ConflictError) as exc_info:
            provider.create_folder("a/b")
        assert exc_info.value.parent_missing is True

    def test_folder_exists(self, provider):
        """Test files and missing paths are not folders."""
        provider.upload_file("a.md", b"x")
        assert provider.folder_exists("a.md") is False
        assert provider.folder_exists("missing") is False


class TestListing:
    """Tests for recursive listing."""

    def populate(self, server):
        server.folders.update({"vault", "vault/notes", "vault/notes/deep"})
        server.files.update(
            {
                "vault/a.md": b"a",
                "vault/notes/b.md": b"bb",
                "vault/notes/deep/c.md": b"ccc",
            }
        )

    def expected(self):
        return {
            "vault/a.md",
            "vault/notes",
            "vault/notes/b.md",
            "vault/notes/deep",
            "vault/notes/deep/c.md",
        }

    def test_depth_infinity(self, server, provider):
        """Test a single PROPFIND lists the whole tree."""
        self.populate(server)
        entries = provider.list_files("vault")
        assert {e.path for e in entries} == self.expected()
        propfinds = [r for r in server.requests if r[0] == "PROPFIND"]
        assert len(propfinds) == 1

    def test_depth_infinity_refused(self):
        """Test 403 on Depth: infinity falls back to level by level listing."""
        server = FakeDAVServer(refuse_infinity=True)
        self.populate(server)
        entries = make_provider(server).list_files("vault")
        assert {e.path for e in entries} == self.expected()

    def test_depth_infinity_ignored(self):
        """Test a shallow answer to Depth: infinity triggers manual listing."""
        server = FakeDAVServer(ignore_depth=True)
        self.populate(server)
        entries = make_provider(server).list_files("vault")
        assert {e.path for e in entries} == self.expected()

    def test_non_recursive(self, server, provider):
        """Test Depth: 1 lists direct children only."""
        self.populate(server)
        entries = provider.list_files("vault", recursive=False)
        assert {e.path for e in entries} == {"vault/a.md", "vault/notes"}

    def test_missing_folder_is_empty(self, provider):
        """Test listing a missing folder gives an empty list."""
        assert provider.missing_directory_is_empty is True
        assert provider.list_files("missing") == []

    def test_folder_entries(self, server, provider):
        """Test folders are flagged and have no size."""
        self.populate(server)
        entries = {e.path: e for e in provider.list_files("vault")}
        assert entries["vault/notes"].is_folder is True
        assert entries["vault/notes"].size == 0
        assert entries["vault/notes/deep/c.md"].size == 3


class TestVendorDetection:
    """Tests for server specific behaviour."""

    def test_jianguoyun_detection(self):
        """Test Jianguoyun servers are recognised."""
        assert is_jianguoyun("https://dav.jianguoyun.com/dav/")
        assert not is_jianguoyun(SERVER)

    def test_jianguoyun_uses_markers_and_pacing(self, server):
        """Test Jianguoyun gets marker folders and a rate limiter."""
        provider = make_provider(server, server_url="https://dav.jianguoyun.com/dav")
        assert provider.supports_native_folders is False
        assert provider.rate_limiter is not None

    def test_generic_server_defaults(self, provider):
        """Test other servers create folders natively without pacing."""
        assert provider.supports_native_folders is True
        assert provider.rate_limiter is None
