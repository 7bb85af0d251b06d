"""Password-authenticated SSH sessions for running commands and copying files."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import paramiko

logger = logging.getLogger(__name__)


class SSHError(Exception):
    """An SSH connection, command or transfer failed."""


@dataclass
class SSHService:
    """Opens SSH connections; host keys are accepted without verification."""

    client_factory: Callable[[], Any] = paramiko.SSHClient
    port: int = 22
    timeout: float = 30.0

    def connect(self, host: str, username: str, password: str) -> SSHClient:
        logger.info("[SSH] Connecting to %s@%s:%d", username, host, self.port)
        client = self.client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                host,
                port=self.port,
                username=username,
                password=password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except Exception as exc:
            client.close()
            raise SSHError(f"SSH dial failed for {host}: {exc}") from exc
        logger.info("[SSH] Successfully connected to %s", host)
        return SSHClient(client)


class SSHClient:
    """An open SSH connection."""

    def __init__(self, client: Any):
        self._client = client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> SSHClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def execute_command(self, command: str) -> str:
        """Run a command and return its standard output; a non-zero exit raises."""
        logger.info("[SSH] Executing command: %s", command)
        try:
            _, stdout, stderr = self._client.exec_command(command)
        except Exception as exc:
            raise SSHError(f"failed to create session: {exc}") from exc
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        status = stdout.channel.recv_exit_status()
        if status != 0:
            message = f"command failed: Process exited with status {status}, stderr: {err}"
            logger.warning("[SSH] Command failed: %s", message)
            raise SSHError(message)
        logger.info("[SSH] Command completed successfully")
        return out

    def download_file(self, remote_file: str, local_file: str) -> None:
        """Copy a remote file to a local path, creating local directories."""
        logger.info("[SSH] Downloading file from %s to %s", remote_file, local_file)
        try:
            sftp = self._client.open_sftp()
        except Exception as exc:
            raise SSHError(f"failed to create SFTP client: {exc}") from exc
        with sftp:
            local = Path(local_file)
            try:
                local.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            except OSError as exc:
                raise SSHError(f"failed to create local directory: {exc}") from exc
            try:
                sftp.stat(remote_file)
            except Exception as exc:
                raise SSHError(f"remote file does not exist: {exc}") from exc
            try:
                remote_handle = sftp.open(remote_file, "rb")
            except Exception as exc:
                raise SSHError(f"failed to open remote file: {exc}") from exc
            with remote_handle:
                try:
                    local_handle = open(local, "wb")
                except OSError as exc:
                    raise SSHError(f"failed to create local file: {exc}") from exc
                with local_handle:
                    try:
                        shutil.copyfileobj(remote_handle, local_handle)
                    except Exception as exc:
                        raise SSHError(f"failed to copy file content: {exc}") from exc
        logger.info("[SSH] File downloaded successfully")

    def upload_file(self, local_file: str, remote_file: str) -> None:
        """Copy a local file to a remote path."""
        with self._client.open_sftp() as sftp:
            with open(local_file, "rb") as local_handle:
                with sftp.open(remote_file, "wb") as remote_handle:
                    shutil.copyfileobj(local_handle, remote_handle)