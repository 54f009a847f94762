import http.client
import os
import socket
import ssl
import time
import urllib.error
import urllib.request
from pathlib import Path

import pytest

from vtk_scan.scan_core import threat_list
from vtk_scan.scan_core.config import EXPECTED_HEADER, CacheConfig, default_cache_dir


def _body(packages, filler: int = 500, header: str = EXPECTED_HEADER) -> str:
    lines = [f"# {header} - compromised packages", "# name:version", ""]
    lines.extend(packages)
    lines.extend(f"filler-package-{index}:1.0.{index}" for index in range(filler))
    return "\n".join(lines) + "\n"


def _config(tmp_path: Path, **overrides) -> CacheConfig:
    return CacheConfig(cache_dir=tmp_path / "cache" / "vtk", url="https://example.invalid/list.txt", **overrides)


def _fail_fetch(url: str, timeout: int) -> str:
    raise AssertionError("network must not be used")


def test_default_cache_dir_honours_xdg(tmp_path):
    assert default_cache_dir({"XDG_CACHE_HOME": str(tmp_path)}) == tmp_path / "vtk"
    assert default_cache_dir({}) == Path.home() / ".cache" / "vtk"


def test_config_from_env_reads_url_override(tmp_path):
    config = CacheConfig.from_env(
        {"XDG_CACHE_HOME": str(tmp_path), "VTK_THREAT_LIST_URL": "https://mirror.example/list.txt"},
        timeout=5,
    )
    assert config.cache_file == tmp_path / "vtk" / "compromised-packages.txt"
    assert config.url == "https://mirror.example/list.txt"
    assert config.timeout == 5


def test_validate_package_list_accepts_good_body():
    body = _body(["@ctrl/tinycolor:4.1.1", "left-pad:1.3.0-beta.1"])
    assert threat_list.validate_package_list(body, EXPECTED_HEADER, 500) == 502


@pytest.mark.parametrize(
    "body, message",
    [
        (_body(["left-pad:1.3.0"], header="Something Else"), "missing expected header"),
        (_body(["left-pad:1.3.0"], filler=10), "possible truncation"),
        (_body(["this line is not a package"]), "invalid package format"),
        (_body(["left-pad:latest"]), "invalid package format"),
    ],
)
def test_validate_package_list_rejects(body, message):
    with pytest.raises(threat_list.ThreatListError, match=message):
        threat_list.validate_package_list(body, EXPECTED_HEADER, 500)


def test_first_run_fetches_and_caches(tmp_path, monkeypatch):
    calls = []

    def fake_fetch(url: str, timeout: int) -> str:
        calls.append((url, timeout))
        return _body(["@ctrl/tinycolor:4.1.1"])

    monkeypatch.setattr(threat_list, "fetch_threat_list", fake_fetch)
    config = _config(tmp_path)
    cache = threat_list.ThreatListCache(config)

    packages = cache.compromised_packages()

    assert calls == [("https://example.invalid/list.txt", 30)]
    assert "@ctrl/tinycolor:4.1.1" in packages
    assert len(packages) == 501
    assert not any(entry.startswith("#") for entry in packages)
    assert config.cache_file.is_file()


def test_fresh_cache_is_not_refetched(tmp_path, monkeypatch):
    config = _config(tmp_path)
    config.cache_dir.mkdir(parents=True)
    config.cache_file.write_text("# header\nleft-pad:1.3.0\n\nnot-a-pair\n", encoding="utf-8")
    monkeypatch.setattr(threat_list, "fetch_threat_list", _fail_fetch)

    packages = threat_list.ThreatListCache(config).compromised_packages()

    assert packages == {"left-pad:1.3.0"}


def test_stale_cache_is_refreshed(tmp_path, monkeypatch):
    config = _config(tmp_path)
    config.cache_dir.mkdir(parents=True)
    config.cache_file.write_text("old-package:1.0.0\n", encoding="utf-8")
    old = time.time() - config.ttl - 60
    os.utime(config.cache_file, (old, old))

    monkeypatch.setattr(threat_list, "fetch_threat_list", lambda url, timeout: _body(["new-package:2.0.0"]))
    cache = threat_list.ThreatListCache(config)
    assert cache.is_stale()

    packages = cache.compromised_packages()

    assert "new-package:2.0.0" in packages
    assert "old-package:1.0.0" not in packages
    assert not cache.is_stale()


def test_invalid_download_keeps_previous_cache(tmp_path, monkeypatch, caplog):
    config = _config(tmp_path)
    config.cache_dir.mkdir(parents=True)
    previous = _body(["@ctrl/tinycolor:4.1.1"])
    config.cache_file.write_text(previous, encoding="utf-8")

    monkeypatch.setattr(
        threat_list,
        "fetch_threat_list",
        lambda url, timeout: _body(["evil:1.0.0"], header="Totally Legit List"),
    )

    with caplog.at_level("WARNING", logger="vtk"):
        packages = threat_list.ThreatListCache(config).compromised_packages(refresh=True)

    assert config.cache_file.read_text(encoding="utf-8") == previous
    assert "@ctrl/tinycolor:4.1.1" in packages
    assert "evil:1.0.0" not in packages
    assert "using cached version" in caplog.text
    assert list(config.cache_dir.iterdir()) == [config.cache_file]


def test_network_failure_falls_back_to_cache(tmp_path, monkeypatch):
    config = _config(tmp_path)
    config.cache_dir.mkdir(parents=True)
    config.cache_file.write_text("left-pad:1.3.0\n", encoding="utf-8")

    def timeout_fetch(url: str, timeout: int) -> str:
        raise threat_list.ThreatListError("Failed to fetch compromised packages list: timed out")

    monkeypatch.setattr(threat_list, "fetch_threat_list", timeout_fetch)

    assert threat_list.ThreatListCache(config).compromised_packages(refresh=True) == {"left-pad:1.3.0"}


def test_failure_without_cache_is_fatal(tmp_path, monkeypatch):
    config = _config(tmp_path)

    def http_error(url: str, timeout: int) -> str:
        raise threat_list.ThreatListError("Failed to fetch compromised packages list: HTTP 503")

    monkeypatch.setattr(threat_list, "fetch_threat_list", http_error)

    with pytest.raises(threat_list.ThreatListUnavailable, match="HTTP 503"):
        threat_list.ThreatListCache(config).compromised_packages()
    assert not config.cache_file.exists()


def test_atomic_write_replaces_content(tmp_path):
    target = tmp_path / "list.txt"
    target.write_text("old\n", encoding="utf-8")
    threat_list.atomic_write(target, "new\n")
    assert target.read_text(encoding="utf-8") == "new\n"
    assert [entry.name for entry in tmp_path.iterdir()] == ["list.txt"]


def test_find_ca_file_prefers_first_existing(tmp_path, monkeypatch):
    bundle = tmp_path / "ca.pem"
    bundle.write_text("", encoding="utf-8")
    monkeypatch.setattr(threat_list, "CA_BUNDLE_PATHS", (str(tmp_path / "missing.pem"), str(bundle)))
    assert threat_list.find_ca_file() == str(bundle)

    monkeypatch.setattr(threat_list, "CA_BUNDLE_PATHS", (str(tmp_path / "missing.pem"),))
    assert threat_list.find_ca_file() is None


def test_write_failure_keeps_previous_cache(tmp_path, monkeypatch, caplog):
    config = _config(tmp_path)
    config.cache_dir.mkdir(parents=True)
    config.cache_file.write_text("left-pad:1.3.0\n", encoding="utf-8")

    def disk_full(path, content):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(threat_list, "fetch_threat_list", lambda url, timeout: _body(["new-package:2.0.0"]))
    monkeypatch.setattr(threat_list, "atomic_write", disk_full)

    with caplog.at_level("WARNING", logger="vtk"):
        packages = threat_list.ThreatListCache(config).compromised_packages(refresh=True)

    assert packages == {"left-pad:1.3.0"}
    assert "No space left on device" in caplog.text


def test_write_failure_without_cache_is_fatal(tmp_path, monkeypatch):
    def disk_full(path, content):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(threat_list, "fetch_threat_list", lambda url, timeout: _body([]))
    monkeypatch.setattr(threat_list, "atomic_write", disk_full)

    with pytest.raises(threat_list.ThreatListUnavailable, match="No space left"):
        threat_list.ThreatListCache(_config(tmp_path)).compromised_packages()


class _Response:
    def __init__(self, status, body=b"", content_type="text/plain; charset=utf-8"):
        self.status = status
        self.headers = http.client.HTTPMessage()
        self.headers["Content-Type"] = content_type
        self._body = body

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


def _urlopen_returning(response, seen=None):
    def fake_urlopen(request, timeout, context):
        if seen is not None:
            seen.append((request, timeout, context))
        return response

    return fake_urlopen


def _urlopen_raising(exc):
    def fake_urlopen(request, timeout, context):
        raise exc

    return fake_urlopen


def test_fetch_returns_body_with_user_agent_and_timeout(monkeypatch):
    seen = []
    monkeypatch.setattr(urllib.request, "urlopen", _urlopen_returning(_Response(200, b"left-pad:1.3.0\n"), seen))

    assert threat_list.fetch_threat_list("https://example.invalid/list.txt", 7) == "left-pad:1.3.0\n"

    request, timeout, context = seen[0]
    assert request.get_header("User-agent") == "vtk-security-scanner"
    assert timeout == 7
    assert context.verify_mode == ssl.CERT_REQUIRED


@pytest.mark.parametrize("status", [204, 500])
def test_fetch_rejects_non_success_status(monkeypatch, status):
    monkeypatch.setattr(urllib.request, "urlopen", _urlopen_returning(_Response(status)))
    with pytest.raises(threat_list.ThreatListError, match=f"HTTP {status}"):
        threat_list.fetch_threat_list("https://example.invalid/list.txt", 5)


@pytest.mark.parametrize(
    "exc, message",
    [
        (urllib.error.HTTPError("https://example.invalid/list.txt", 503, "Service Unavailable", None, None), "HTTP 503"),
        (urllib.error.URLError("Name or service not known"), "Name or service not known"),
        (socket.timeout("timed out"), "timed out"),
        (ssl.SSLError("certificate verify failed"), "certificate verify failed"),
    ],
)
def test_fetch_errors_become_threat_list_errors(monkeypatch, exc, message):
    monkeypatch.setattr(urllib.request, "urlopen", _urlopen_raising(exc))
    with pytest.raises(threat_list.ThreatListError, match=message):
        threat_list.fetch_threat_list("https://example.invalid/list.txt", 5)


def test_fetch_unknown_charset_is_an_error(monkeypatch):
    response = _Response(200, b"left-pad:1.3.0\n", content_type="text/plain; charset=no-such-codec")
    monkeypatch.setattr(urllib.request, "urlopen", _urlopen_returning(response))
    with pytest.raises(threat_list.ThreatListError):
        threat_list.fetch_threat_list("https://example.invalid/list.txt", 5)


def test_ssl_context_requires_tls12_and_verification():
    context = threat_list.build_ssl_context()
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname
