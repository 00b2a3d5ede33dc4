"""Remote file sources: an SFTP server or a local directory."""

from __future__ import annotations

import stat
from pathlib import Path
from threading import Lock
from typing import BinaryIO, Protocol, runtime_checkable

import paramiko
import structlog

from ..errors import TransportError


@runtime_checkable
class RemoteFileSource(Protocol):
    """Listing and streaming access to the watched directory."""

    def list(self, directory: str) -> list[str]:
        """Return the regular file names of ``directory`` in server order."""

    def open(self, path: str) -> BinaryIO:
        """Open ``path`` for binary reading; the caller closes the stream."""

    def close(self) -> None:
        """Drop any cached connection."""


class SFTPFileSource:
    """SFTP access over paramiko with one cached, lazily reconnected session."""

    def __init__(
        self,
        host: str,
        port: int = 22,
        username: str = "",
        password: str | None = None,
        private_key: str | None = None,
        private_key_passphrase: str | None = None,
        allow_unknown_keys: bool = True,
        timeout: float = 10.0,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.private_key = private_key
        self.private_key_passphrase = private_key_passphrase
        self.allow_unknown_keys = allow_unknown_keys
        self.timeout = timeout
        self.logger = logger or structlog.get_logger("xml_ingest.sftp")
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._lock = Lock()

    def _session(self) -> paramiko.SFTPClient:
        with self._lock:
            if self._sftp is not None and self._is_active():
                return self._sftp
            self._reset()
            self.logger.info(
                "sftp_connecting",
                host=self.host,
                port=self.port,
                private_key=bool(self.private_key),
                passphrase=bool(self.private_key_passphrase),
            )
            ssh = paramiko.SSHClient()
            if self.allow_unknown_keys:
                ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            else:
                ssh.load_system_host_keys()
                ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
            try:
                ssh.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password or None,
                    key_filename=self.private_key or None,
                    passphrase=self.private_key_passphrase or None,
                    timeout=self.timeout,
                    allow_agent=False,
                    look_for_keys=False,
                )
                sftp = ssh.open_sftp()
            except (paramiko.SSHException, OSError) as exc:
                ssh.close()
                raise TransportError(f"SFTP connect to {self.host}:{self.port} failed: {exc}") from exc
            self._ssh = ssh
            self._sftp = sftp
            return sftp

    def _is_active(self) -> bool:
        transport = self._ssh.get_transport() if self._ssh is not None else None
        return transport is not None and transport.is_active()

    def _reset(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
        if self._ssh is not None:
            self._ssh.close()
        self._sftp = None
        self._ssh = None

    def list(self, directory: str) -> list[str]:
        sftp = self._session()
        try:
            entries = sftp.listdir_attr(directory or ".")
        except (paramiko.SSHException, OSError) as exc:
            self._invalidate()
            raise TransportError(f"SFTP listing of {directory!r} failed: {exc}") from exc
        return [entry.filename for entry in entries if stat.S_ISREG(entry.st_mode or 0)]

    def open(self, path: str) -> BinaryIO:
        sftp = self._session()
        try:
            handle = sftp.open(path, "rb")
        except (paramiko.SSHException, OSError) as exc:
            if not isinstance(exc, FileNotFoundError):
                self._invalidate()
            raise TransportError(f"SFTP open of {path!r} failed: {exc}") from exc
        handle.prefetch()
        return handle  # type: ignore[return-value]

    def _invalidate(self) -> None:
        with self._lock:
            if not self._is_active():
                self._reset()

    def close(self) -> None:
        with self._lock:
            self._reset()


class LocalDirectorySource:
    """Treat a local directory as the remote side; paths resolve under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def list(self, directory: str) -> list[str]:
        target = self._resolve(directory)
        try:
            return sorted(entry.name for entry in target.iterdir() if entry.is_file())
        except OSError as exc:
            raise TransportError(f"listing of {target} failed: {exc}") from exc

    def open(self, path: str) -> BinaryIO:
        target = self._resolve(path)
        try:
            return target.open("rb")
        except OSError as exc:
            raise TransportError(f"open of {target} failed: {exc}") from exc

    def close(self) -> None:
        return None


__all__ = ["LocalDirectorySource", "RemoteFileSource", "SFTPFileSource"]
