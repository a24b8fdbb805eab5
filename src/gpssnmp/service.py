from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from gpssnmp.gpsd import GpsdConnectionError, GpsdReadError, GpsdSession, SourceSpec


LOGGER = logging.getLogger("gpssnmp.service")


class Session(Protocol):
    def __enter__(self) -> Session: ...

    def __exit__(self, *exc_info: object) -> None: ...

    def stream(self, device: str | None = None) -> None: ...

    def waiting(self, timeout: float) -> bool: ...

    def read(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class SatelliteSample:
    prn: int
    used: bool
    snr: float = 0.0


@dataclass(frozen=True)
class SkyReport:
    satellites: tuple[SatelliteSample, ...]
    satellites_used: int
    satellites_visible: int


@dataclass(frozen=True)
class AcquireConfig:
    source: SourceSpec = field(default_factory=SourceSpec)
    timeout_seconds: float = 10.0
    wait_seconds: float = 5.0


class AcquireFailure(enum.Enum):
    CONNECTION_FAILED = "connection failed"
    READ_FAILED = "read failed"
    TIMED_OUT = "timeout"


@dataclass(frozen=True)
class AcquireResult:
    success: bool
    report: SkyReport | None = None
    failure: AcquireFailure | None = None
    error: str | None = None
    frames_consumed: int = 0
    duration_seconds: float | None = None


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return default
    return default


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None


def _parse_sample(entry: Any) -> SatelliteSample:
    if not isinstance(entry, dict):
        # keep list positions stable for the used-window scan
        return SatelliteSample(prn=0, used=False, snr=0.0)
    return SatelliteSample(
        prn=_as_int(entry.get("PRN")) or 0,
        used=bool(entry.get("used", False)),
        snr=max(0.0, _as_float(entry.get("ss"), 0.0)),
    )


def parse_sky_report(frame: dict[str, Any]) -> SkyReport | None:
    if frame.get("class") != "SKY":
        return None
    raw_satellites = frame.get("satellites")
    if not isinstance(raw_satellites, list):
        # SKY without a satellite list only carries DOPs
        return None

    satellites = tuple(_parse_sample(entry) for entry in raw_satellites)
    used = _as_int(frame.get("uSat"))
    if used is None:
        used = sum(1 for sample in satellites if sample.used)
    visible = _as_int(frame.get("nSat"))
    if visible is None:
        visible = len(satellites)
    return SkyReport(satellites=satellites, satellites_used=used, satellites_visible=visible)


def acquire_report(
    config: AcquireConfig,
    *,
    session_factory: Callable[[str, int], Session] = GpsdSession,
    clock: Callable[[], float] = time.monotonic,
) -> AcquireResult:
    started_at = clock()
    frames_consumed = 0

    def _failed(failure: AcquireFailure, error: str) -> AcquireResult:
        return AcquireResult(
            success=False,
            failure=failure,
            error=error,
            frames_consumed=frames_consumed,
            duration_seconds=clock() - started_at,
        )

    source = config.source
    try:
        with session_factory(source.server, source.port) as session:
            session.stream(source.device)
            # connect time is not charged to the report deadline
            started_at = clock()
            while True:
                if session.waiting(config.wait_seconds):
                    # an empty frame is a partial line or non-JSON noise
                    frame = session.read()
                    if frame:
                        frames_consumed += 1
                        report = parse_sky_report(frame)
                        if report is not None:
                            duration = clock() - started_at
                            LOGGER.info(
                                "SKY report after %d frames in %.3fs: %d visible, %d used",
                                frames_consumed,
                                duration,
                                report.satellites_visible,
                                report.satellites_used,
                            )
                            return AcquireResult(
                                success=True,
                                report=report,
                                frames_consumed=frames_consumed,
                                duration_seconds=duration,
                            )
                        LOGGER.debug("consumed %s frame", frame.get("class", "<unclassified>"))
                else:
                    LOGGER.debug("no data from gpsd within %.1fs", config.wait_seconds)

                if clock() - started_at > config.timeout_seconds:
                    return _failed(AcquireFailure.TIMED_OUT, f"no SKY report within {config.timeout_seconds:g}s")
    except GpsdConnectionError as error:
        return _failed(AcquireFailure.CONNECTION_FAILED, str(error))
    except GpsdReadError as error:
        return _failed(AcquireFailure.READ_FAILED, str(error))
