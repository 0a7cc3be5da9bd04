import pytest
from rich.console import Console

from hostprov.errors import ProvisioningError
from hostprov.services.download import DownloadService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.headers = {"Content-Length": str(len(payload))}

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=8192):
        yield self.payload

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, payload: bytes):
        self.payload = payload
        self.calls = []

    def get(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return FakeResponse(self.payload)


class FailingRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self):
        self.calls = 0

    def get(self, *_args, **_kwargs):
        self.calls += 1
        raise self.RequestException("connection reset")


def test_download_file_writes_payload(tmp_path):
    requests_module = FakeRequestsModule(payload=b"deb-bytes")
    service = DownloadService(logger=DummyLogger(), console=Console(record=True), requests_module=requests_module)

    dest = tmp_path / "pkg" / "shiny-server.deb"
    service.download_file("https://example.com/shiny-server.deb", str(dest))

    assert dest.read_bytes() == b"deb-bytes"
    assert requests_module.calls[0][1] == {"stream": True}


def test_download_file_is_not_retried(tmp_path):
    requests_module = FailingRequestsModule()
    service = DownloadService(logger=DummyLogger(), console=Console(record=True), requests_module=requests_module)

    with pytest.raises(ProvisioningError, match="Download failed"):
        service.download_file("https://example.com/go.tar.gz", str(tmp_path / "go.tar.gz"))

    assert requests_module.calls == 1


def test_filename_for_uses_url_path_or_fallback():
    assert DownloadService.filename_for("https://example.com/a/julia-1.5.0.tar.gz?x=1") == "julia-1.5.0.tar.gz"
    assert DownloadService.filename_for("https://example.com/", "tool.tar.gz") == "tool.tar.gz"
