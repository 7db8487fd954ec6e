"""SSH transport: run commands and copy files to the stack host over paramiko."""

import asyncio
import getpass
import logging
import time

import paramiko

from pttops.errors import RemoteCommandError, TransportError

logger = logging.getLogger(__name__)

SCP_COMMAND = "/usr/bin/scp -tr ./"
CONNECT_TIMEOUT = 30
READ_CHUNK = 4096
POLL_DELAY = 0.1


def scp_header(content, name, mode="0644"):
    """SCP sink header announcing one file of len(content) bytes."""
    return f"C{mode} {len(content)} {name}\n".encode()


class _LineBuffer:
    """Splits a byte stream into lines, handing each complete one to `emit`."""

    def __init__(self, emit):
        self._emit = emit
        self._pending = b""
        self.lines = []

    def feed(self, data):
        *complete, self._pending = (self._pending + data).split(b"\n")
        for raw in complete:
            self._send(raw)

    def close(self):
        if self._pending:
            self._send(self._pending)
            self._pending = b""

    def _send(self, raw):
        line = raw.decode(errors="replace").rstrip("\r")
        self.lines.append(line)
        self._emit(line)


class RemoteExecClient:
    """Runs commands and copies files on one remote host.

    Authenticates with the local SSH agent only and accepts any host key.
    Every operation opens its own connection and closes it when done.
    """

    def __init__(self, host, port=22, username=None, client_factory=paramiko.SSHClient):
        self.host = host
        self.port = port
        self.username = username or getpass.getuser()
        self._client_factory = client_factory

    def __repr__(self):
        return f"RemoteExecClient({self.username}@{self.host}:{self.port})"

    def _connect(self):
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                timeout=CONNECT_TIMEOUT,
                allow_agent=True,
                look_for_keys=False,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise TransportError(f"failed to connect to {self.host}:{self.port}: {e}") from e
        return client

    def run_command(self, command, stdout=None, stderr=None):
        """Run `command` remotely, streaming output line by line.

        `stdout`/`stderr` receive each line without its trailing newline;
        they default to logging at INFO and ERROR.
        """
        out_lines = _LineBuffer(stdout or logger.info)
        err_lines = _LineBuffer(stderr or logger.error)

        client = self._connect()
        try:
            try:
                _, out, _ = client.exec_command(command)
                exit_status = self._pump(out.channel, out_lines, err_lines)
            except (paramiko.SSHException, OSError) as e:
                raise TransportError(f"session on {self.host} failed: {e}") from e
        finally:
            client.close()

        if exit_status != 0:
            raise RemoteCommandError(command, exit_status, "\n".join(err_lines.lines))

    @staticmethod
    def _pump(channel, out_lines, err_lines):
        # both streams share one flow-control window, so neither may be left unread
        while True:
            got_data = False
            while channel.recv_ready():
                out_lines.feed(channel.recv(READ_CHUNK))
                got_data = True
            while channel.recv_stderr_ready():
                err_lines.feed(channel.recv_stderr(READ_CHUNK))
                got_data = True
            if channel.exit_status_ready() and not (channel.recv_ready() or channel.recv_stderr_ready()):
                break
            if not got_data:
                time.sleep(POLL_DELAY)
        out_lines.close()
        err_lines.close()
        return channel.recv_exit_status()

    def copy_file(self, content, remote_name, mode="0644"):
        """Write `content` to `remote_name` in the login directory via the SCP sink protocol."""
        if isinstance(content, str):
            content = content.encode()

        client = self._connect()
        try:
            try:
                stdin, out, err = client.exec_command(SCP_COMMAND)
                stdin.write(scp_header(content, remote_name, mode))
                stdin.write(content)
                stdin.write(b"\x00")
                stdin.flush()
                stdin.channel.shutdown_write()
                exit_status = out.channel.recv_exit_status()
                stderr_text = err.read().decode(errors="replace").strip()
            except (paramiko.SSHException, OSError) as e:
                raise TransportError(f"copying {remote_name} to {self.host} failed: {e}") from e
        finally:
            client.close()

        if exit_status != 0:
            raise RemoteCommandError(SCP_COMMAND, exit_status, stderr_text)
        logger.debug(f"Copied {len(content)} bytes to {self.host}:{remote_name}")

    async def arun_command(self, command, stdout=None, stderr=None):
        await asyncio.to_thread(self.run_command, command, stdout, stderr)

    async def acopy_file(self, content, remote_name, mode="0644"):
        await asyncio.to_thread(self.copy_file, content, remote_name, mode)
