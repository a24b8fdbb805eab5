from __future__ import annotations

import json
import logging
import select
import socket
from dataclasses import dataclass
from typing import Any


DEFAULT_SERVER = "localhost"
DEFAULT_PORT = 2947
MAX_RESPONSE_BYTES = 16384
LOGGER = logging.getLogger("gpssnmp.gpsd")


class GpsdError(Exception):
    pass


class GpsdConnectionError(GpsdError):
    pass


class GpsdReadError(GpsdError):
    pass


@dataclass(frozen=True)
class SourceSpec:
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT
    device: str | None = None

    def __str__(self) -> str:
        host = f"[{self.server}]" if ":" in self.server else self.server
        if self.device:
            return f"{host}:{self.port}:{self.device}"
        return f"{host}:{self.port}"


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"invalid gpsd port: {raw!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"invalid gpsd port: {raw!r}")
    return port


def parse_source_spec(spec: str | None) -> SourceSpec:
    """Parse ``server[:port[:device]]`` into a SourceSpec.

    IPv6 literals must be bracketed, e.g. ``[::1]:2947:/dev/ttyUSB0``.
    Empty fields fall back to the defaults.
    """
    if spec is None or not spec.strip():
        return SourceSpec()

    remainder = spec.strip()
    server = ""
    if remainder.startswith("["):
        closing = remainder.find("]")
        if closing < 0:
            raise ValueError(f"unterminated IPv6 address in {spec!r}")
        server = remainder[1:closing]
        remainder = remainder[closing + 1 :]
        if remainder and not remainder.startswith(":"):
            raise ValueError(f"unexpected text after IPv6 address in {spec!r}")
        remainder = remainder[1:]
        parts = remainder.split(":", 1) if remainder else []
    else:
        head = remainder.split(":", 2)
        server = head[0]
        parts = head[1:]

    port = DEFAULT_PORT
    device = None
    if parts and parts[0]:
        port = _parse_port(parts[0])
    if len(parts) > 1 and parts[1]:
        device = parts[1]
    return SourceSpec(server=server or DEFAULT_SERVER, port=port, device=device)


class GpsdSession:
    """Client side of one gpsd connection speaking the JSON protocol."""

    def __init__(self, host: str, port: int, *, connect_timeout: float = 5.0) -> None:
        self.host = host
        self.port = port
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._buffer = b""

    def __enter__(self) -> GpsdSession:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        try:
            self._sock = socket.create_connection((self.host, self.port), timeout=self._connect_timeout)
        except OSError as error:
            raise GpsdConnectionError(f"{self.host}:{self.port}: {error}") from error
        self._sock.settimeout(None)
        LOGGER.debug("connected to gpsd at %s:%d", self.host, self.port)

    def close(self) -> None:
        if self._sock is None:
            return
        try:
            self._sock.close()
        finally:
            self._sock = None
            self._buffer = b""
        LOGGER.debug("closed gpsd session %s:%d", self.host, self.port)

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise GpsdReadError("gpsd session is not open")
        return self._sock

    def send(self, command: str) -> None:
        sock = self._require_socket()
        try:
            sock.sendall(command.encode("ascii"))
        except OSError as error:
            raise GpsdReadError(f"write failed: {error}") from error

    def stream(self, device: str | None = None) -> None:
        watch: dict[str, Any] = {"enable": True, "json": True}
        if device:
            watch["device"] = device
        self.send("?WATCH=" + json.dumps(watch, separators=(",", ":")) + "\n")

    def waiting(self, timeout: float) -> bool:
        if b"\n" in self._buffer:
            return True
        sock = self._require_socket()
        try:
            readable, _, _ = select.select([sock], [], [], max(0.0, timeout))
        except (OSError, ValueError) as error:
            raise GpsdReadError(f"wait failed: {error}") from error
        return bool(readable)

    def _read_line(self) -> bytes | None:
        if b"\n" not in self._buffer:
            sock = self._require_socket()
            try:
                chunk = sock.recv(4096)
            except OSError as error:
                raise GpsdReadError(f"recv failed: {error}") from error
            if not chunk:
                raise GpsdReadError("gpsd closed the connection")
            self._buffer += chunk
            if b"\n" not in self._buffer:
                if len(self._buffer) > MAX_RESPONSE_BYTES:
                    raise GpsdReadError(f"gpsd response exceeds {MAX_RESPONSE_BYTES} bytes without a newline")
                return None
        line, _, self._buffer = self._buffer.partition(b"\n")
        return line.strip()

    def read(self) -> dict[str, Any]:
        """Return the next frame, or ``{}`` when no complete line is available yet.

        At most one ``recv`` is issued per call so a daemon that stalls
        mid-line cannot block the caller past its own wait budget.
        """
        line = self._read_line()
        if not line:
            return {}
        try:
            frame = json.loads(line)
        except ValueError:
            LOGGER.debug("ignoring non-JSON line from gpsd: %r", line[:120])
            return {}
        if not isinstance(frame, dict):
            raise GpsdReadError(f"unexpected gpsd payload: {line[:120]!r}")
        return frame
