from __future__ import annotations

import io
import math
from pathlib import Path

import paramiko
import pytest

from ernest.config.export_config import parse_config
from ernest.exporters import transfer
from ernest.exporters.common import ExportErrorCode, ExportLogLevel
from ernest.exporters.transfer import (
    SshAuthFailed,
    TransferCancelled,
    export_transfer,
    resolve_remote_path,
    resolve_username,
    stream_upload,
)
from tests.helpers import make_context, write_config

SFTP_CONFIG = """
version = 1
[ftp]
enabled = true
protocol = "sftp"
[ftp.profiles.staging]
enabled = true
host = "files.example.com"
port = 2222
username = "deploy"
remote_path = "/var/www/"
"""

FTP_CONFIG = """
version = 1
[ftp]
enabled = true
protocol = "ftp"
[ftp.profiles.legacy]
enabled = true
host = "ftp.example.com"
username = "webmaster"
remote_path = "/htdocs/index.md"
"""


class _RemoteFile(io.BytesIO):
    def __init__(self, store: dict, path: str) -> None:
        super().__init__()
        self._store = store
        self._path = path

    def close(self) -> None:
        if not self.closed:
            self._store[self._path] = self.getvalue()
        super().close()


class FakeSftp:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.closed = False

    def open(self, path, mode):
        assert mode == "wb"
        return _RemoteFile(self.files, path)

    def close(self):
        self.closed = True


class FakeTransport:
    def __init__(self) -> None:
        self.closed = False

    def close(self):
        self.closed = True


class FakeFTP:
    instances: list["FakeFTP"] = []

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.stored: dict[str, bytes] = {}
        FakeFTP.instances.append(self)

    def connect(self, host, port):
        self.calls.append(("connect", host, port))

    def login(self, user, passwd):
        self.calls.append(("login", user, passwd))

    def storbinary(self, cmd, handle):
        self.stored[cmd] = handle.read()

    def quit(self):
        self.calls.append(("quit",))

    def close(self):
        self.calls.append(("close",))


@pytest.fixture()
def document(project: Path) -> Path:
    doc = project / "docs" / "page.md"
    doc.write_bytes(b"x" * 20_000)
    return doc


@pytest.fixture()
def fake_sftp(monkeypatch):
    sftp = FakeSftp()
    transport = FakeTransport()
    calls = []

    def _open(host, port, username, password):
        calls.append((host, port, username, password))
        return transport, sftp

    monkeypatch.setattr(transfer, "open_sftp", _open)
    sftp.calls = calls
    sftp.transport = transport
    return sftp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def test_stream_upload_reports_bounded_increasing_progress():
    events = []
    ctx = make_context("/tmp/x.md", "ftp", on_progress=lambda s, t: events.append((s, t)))
    payload = b"a" * 20_000
    sink = io.BytesIO()

    sent = stream_upload(io.BytesIO(payload), sink, len(payload), ctx, chunk_size=8192)

    assert sent == len(payload)
    assert sink.getvalue() == payload
    assert len(events) <= math.ceil(len(payload) / 8192)
    assert events[-1] == (len(payload), len(payload))
    sent_values = [value for value, _ in events]
    assert sent_values == sorted(sent_values)
    assert len(set(sent_values)) == len(sent_values)


def test_stream_upload_empty_file_reports_nothing():
    events = []
    ctx = make_context("/tmp/x.md", "ftp", on_progress=lambda s, t: events.append(s))
    assert stream_upload(io.BytesIO(b""), io.BytesIO(), 0, ctx, chunk_size=8192) == 0
    assert events == []


def test_stream_upload_stops_at_next_chunk_after_cancel():
    ctx = make_context("/tmp/x.md", "ftp")
    ctx.on_progress = lambda sent, total: ctx.cancel.set()
    sink = io.BytesIO()

    with pytest.raises(TransferCancelled):
        stream_upload(io.BytesIO(b"b" * 30_000), sink, 30_000, ctx, chunk_size=8192)
    assert len(sink.getvalue()) == 8192


def test_resolve_remote_path_appends_file_name():
    assert resolve_remote_path("/var/www/", Path("/p/page.md")) == "/var/www/page.md"
    assert resolve_remote_path("/var/www/out.md", Path("/p/page.md")) == "/var/www/out.md"


def test_resolve_username_falls_back_to_environment(monkeypatch):
    for name in ("USER", "USERNAME", "LOGNAME"):
        monkeypatch.delenv(name, raising=False)
    assert resolve_username("  alice ") == "alice"
    assert resolve_username("") == ""
    monkeypatch.setenv("LOGNAME", "bob")
    assert resolve_username("") == "bob"


# ---------------------------------------------------------------------------
# SFTP
# ---------------------------------------------------------------------------
def test_sftp_upload_streams_the_document(project, document, vault, fake_sftp):
    write_config(project, SFTP_CONFIG)
    vault.set(document, "ftp", "staging", "password", "pw")
    events = []
    ctx = make_context(document, "ftp", "staging", on_progress=lambda s, t: events.append(s))

    response = export_transfer(ctx, parse_config(SFTP_CONFIG), vault)

    assert response.ok is True
    assert response.summary == "SFTP export completed"
    assert fake_sftp.calls == [("files.example.com", 2222, "deploy", "pw")]
    assert fake_sftp.files["/var/www/page.md"] == document.read_bytes()
    assert events[-1] == 20_000
    assert fake_sftp.closed and fake_sftp.transport.closed


def test_sftp_auth_failure_without_password(project, document, vault, monkeypatch):
    write_config(project, SFTP_CONFIG)

    def _reject(host, port, username, password):
        raise SshAuthFailed("ssh_auth_failed")

    monkeypatch.setattr(transfer, "open_sftp", _reject)
    response = export_transfer(
        make_context(document, "ftp", "staging"), parse_config(SFTP_CONFIG), vault
    )

    assert response.error.code is ExportErrorCode.FTP_MISSING_PASSWORD
    assert response.summary == "SFTP password missing (set in app or use SSH agent)"


def test_sftp_connection_error_is_ftp_failed(project, document, vault, monkeypatch):
    write_config(project, SFTP_CONFIG)

    def _refuse(host, port, username, password):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(transfer, "open_sftp", _refuse)
    response = export_transfer(
        make_context(document, "ftp", "staging"), parse_config(SFTP_CONFIG), vault
    )

    assert response.error.code is ExportErrorCode.FTP_FAILED
    assert response.error.detail == "refused"


def test_sftp_cancel_mid_transfer(project, document, vault, fake_sftp):
    write_config(project, SFTP_CONFIG)
    ctx = make_context(document, "ftp", "staging")
    ctx.on_progress = lambda sent, total: ctx.cancel.set()

    response = export_transfer(ctx, parse_config(SFTP_CONFIG), vault)

    assert response.error.code is ExportErrorCode.EXPORT_CANCELLED
    assert fake_sftp.transport.closed


class SshServer:
    """Stand-in for the remote end of ``paramiko.Transport``."""

    def __init__(self) -> None:
        self.accepted_keys: set[str] = set()
        self.accepted_password = "pw"
        self.agent_keys: list[str] = []
        self.agent_error: Exception | None = None
        self.attempts: list[tuple] = []
        self.transports: list["SshServer.Transport"] = []
        self.sftp = FakeSftp()

    def transport_factory(self, addr):
        transport = SshServer.Transport(self, addr)
        self.transports.append(transport)
        return transport

    def agent_factory(self):
        if self.agent_error is not None:
            raise self.agent_error
        return SshServer.Agent(self.agent_keys)

    class Agent:
        def __init__(self, keys) -> None:
            self._keys = list(keys)

        def get_keys(self):
            return tuple(self._keys)

        def close(self):
            pass

    class Transport:
        def __init__(self, server: "SshServer", addr) -> None:
            self.server = server
            self.addr = addr
            self.authenticated = False
            self.closed = False

        def start_client(self):
            pass

        def auth_publickey(self, username, key):
            self.server.attempts.append(("key", username, key))
            if key not in self.server.accepted_keys:
                raise paramiko.AuthenticationException("key rejected")
            self.authenticated = True

        def auth_password(self, username, password):
            self.server.attempts.append(("password", username, password))
            if password != self.server.accepted_password:
                raise paramiko.AuthenticationException("bad password")
            self.authenticated = True

        def is_authenticated(self):
            return self.authenticated

        def close(self):
            self.closed = True


@pytest.fixture()
def ssh_server(monkeypatch) -> SshServer:
    server = SshServer()
    monkeypatch.setattr(paramiko, "Transport", server.transport_factory)
    monkeypatch.setattr(paramiko, "Agent", server.agent_factory)
    monkeypatch.setattr(
        paramiko.SFTPClient, "from_transport", staticmethod(lambda transport: server.sftp)
    )
    return server


def _export_sftp(document, vault):
    return export_transfer(
        make_context(document, "ftp", "staging"), parse_config(SFTP_CONFIG), vault
    )


def test_sftp_agent_key_skips_password(project, document, vault, ssh_server):
    write_config(project, SFTP_CONFIG)
    vault.set(document, "ftp", "staging", "password", "pw")
    ssh_server.agent_keys = ["id_rsa", "id_ed25519"]
    ssh_server.accepted_keys = {"id_ed25519"}

    response = _export_sftp(document, vault)

    assert response.ok is True
    assert ssh_server.attempts == [
        ("key", "deploy", "id_rsa"),
        ("key", "deploy", "id_ed25519"),
    ]
    (transport,) = ssh_server.transports
    assert transport.addr == ("files.example.com", 2222)
    assert ssh_server.sftp.files["/var/www/page.md"] == document.read_bytes()
    assert transport.closed


def test_sftp_rejected_agent_keys_fall_back_to_password(
    project, document, vault, ssh_server
):
    write_config(project, SFTP_CONFIG)
    vault.set(document, "ftp", "staging", "password", "pw")
    ssh_server.agent_keys = ["id_rsa"]

    response = _export_sftp(document, vault)

    assert response.ok is True
    assert ssh_server.attempts == [
        ("key", "deploy", "id_rsa"),
        ("password", "deploy", "pw"),
    ]


def test_sftp_without_agent_or_password_reports_missing_password(
    project, document, vault, ssh_server
):
    write_config(project, SFTP_CONFIG)

    response = _export_sftp(document, vault)

    assert response.error.code is ExportErrorCode.FTP_MISSING_PASSWORD
    assert ssh_server.attempts == []
    assert ssh_server.transports[0].closed
    assert ssh_server.sftp.files == {}


def test_sftp_broken_agent_falls_back_to_password(project, document, vault, ssh_server):
    write_config(project, SFTP_CONFIG)
    vault.set(document, "ftp", "staging", "password", "pw")
    ssh_server.agent_error = paramiko.SSHException("lost ssh-agent")

    response = _export_sftp(document, vault)

    assert response.ok is True
    assert ssh_server.attempts == [("password", "deploy", "pw")]
    assert ssh_server.sftp.files["/var/www/page.md"] == document.read_bytes()


# ---------------------------------------------------------------------------
# FTP
# ---------------------------------------------------------------------------
def test_ftp_upload_with_stored_password(project, document, vault, monkeypatch):
    write_config(project, FTP_CONFIG)
    vault.set(document, "ftp", "legacy", "password", "hunter2")
    FakeFTP.instances = []
    monkeypatch.setattr(transfer.ftplib, "FTP", FakeFTP)

    response = export_transfer(
        make_context(document, "ftp", "legacy"), parse_config(FTP_CONFIG), vault
    )

    assert response.ok is True
    assert response.summary == "FTP export completed"
    (client,) = FakeFTP.instances
    assert client.calls[0] == ("connect", "ftp.example.com", 21)
    assert client.calls[1] == ("login", "webmaster", "hunter2")
    assert client.stored["STOR /htdocs/index.md"] == document.read_bytes()


def test_ftp_uses_environment_password_fallback(project, document, vault, monkeypatch):
    write_config(project, FTP_CONFIG)
    FakeFTP.instances = []
    monkeypatch.setattr(transfer.ftplib, "FTP", FakeFTP)
    monkeypatch.setenv("ERNEST_FTP_PASSWORD", "from-env")

    response = export_transfer(
        make_context(document, "ftp", "legacy"), parse_config(FTP_CONFIG), vault
    )

    assert response.ok is True
    assert FakeFTP.instances[0].calls[1] == ("login", "webmaster", "from-env")
    assert any(
        log.level is ExportLogLevel.WARN and log.message == "Using FTP password from environment"
        for log in response.logs
    )


def test_ftp_missing_password(project, document, vault, monkeypatch):
    write_config(project, FTP_CONFIG)
    monkeypatch.delenv("ERNEST_FTP_PASSWORD", raising=False)

    response = export_transfer(
        make_context(document, "ftp", "legacy"), parse_config(FTP_CONFIG), vault
    )

    assert response.error.code is ExportErrorCode.FTP_MISSING_PASSWORD
    assert response.summary == "FTP password missing (set in app)"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def test_profile_is_required(project, document, vault):
    response = export_transfer(
        make_context(document, "ftp"), parse_config(SFTP_CONFIG), vault
    )
    assert response.error.code is ExportErrorCode.PROFILE_REQUIRED


def test_disabled_target(project, document, vault):
    config = parse_config("version = 1\n[ftp]\nenabled = false\n")
    response = export_transfer(make_context(document, "ftp", "staging"), config, vault)
    assert response.error.code is ExportErrorCode.TARGET_DISABLED
    assert response.summary == "FTP export is disabled"


def test_missing_username(project, document, vault, monkeypatch):
    for name in ("USER", "USERNAME", "LOGNAME"):
        monkeypatch.delenv(name, raising=False)
    config = parse_config(SFTP_CONFIG.replace('username = "deploy"\n', ""))

    response = export_transfer(make_context(document, "ftp", "staging"), config, vault)

    assert response.error.code is ExportErrorCode.FTP_MISSING_USERNAME
    assert response.summary == "FTP username is missing"
