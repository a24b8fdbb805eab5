from __future__ import annotations

import enum
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from gpssnmp.service import AcquireResult, SkyReport


class MetricKind(enum.Enum):
    VISIBLE = ".1.3.6.1.2.1.25.1.31"
    USED = ".1.3.6.1.2.1.25.1.32"
    SNR_AVG = ".1.3.6.1.2.1.25.1.33"

    @property
    def oid(self) -> str:
        return self.value

    @property
    def is_integer(self) -> bool:
        return self is not MetricKind.SNR_AVG


@dataclass(frozen=True)
class SatelliteMetrics:
    visible: int
    used: int
    snr_avg: float

    def value_for(self, kind: MetricKind) -> int | float:
        if kind is MetricKind.VISIBLE:
            return self.visible
        if kind is MetricKind.USED:
            return self.used
        return self.snr_avg


def reduce_report(report: SkyReport) -> SatelliteMetrics:
    """Reduce a SKY report to visible/used counts and the average used SNR.

    Samples at indices ``0..used`` (inclusive) are scanned, stopping early at
    the end of the satellite list. Only samples flagged as used with an SNR
    above 1.0 contribute, but the total is divided by the reported used count.
    """
    used = report.satellites_used
    visible = report.satellites_visible

    snr_total = 0.0
    for sample in report.satellites[: max(0, used + 1)]:
        if sample.used and sample.snr > 1.0:
            snr_total += sample.snr

    snr_avg = 0.0
    if used > 0:
        snr_avg = snr_total / used
    return SatelliteMetrics(visible=visible, used=used, snr_avg=snr_avg)


def lookup_metric(oid: str) -> MetricKind | None:
    for kind in MetricKind:
        if kind.oid == oid:
            return kind
    return None


def render_gauge_line(kind: MetricKind, metrics: SatelliteMetrics) -> str:
    value = metrics.value_for(kind)
    if kind.is_integer:
        return f"{kind.oid} = gauge: {int(value)}"
    return f"{kind.oid} = gauge: {float(value):f}"


class SatelliteMetricsPublisher:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.poll_success = Gauge(
            "gpsd_poll_success",
            "Latest gpsd poll status (1=success, 0=failure)",
            ["source"],
            registry=self.registry,
        )
        self.poll_duration_seconds = Gauge(
            "gpsd_poll_duration_seconds",
            "Time spent waiting for a gpsd SKY report in seconds",
            ["source"],
            registry=self.registry,
        )
        self.satellites_visible = Gauge(
            "gpsd_satellites_visible",
            "Satellites visible in the latest SKY report",
            ["source"],
            registry=self.registry,
        )
        self.satellites_used = Gauge(
            "gpsd_satellites_used",
            "Satellites used in the navigation solution",
            ["source"],
            registry=self.registry,
        )
        self.snr_average_db = Gauge(
            "gpsd_satellites_snr_average_db",
            "Average signal-to-noise ratio of used satellites in dB-Hz",
            ["source"],
            registry=self.registry,
        )

    def apply_acquire_result(self, *, source: str, result: AcquireResult) -> SatelliteMetrics | None:
        self.poll_success.labels(source=source).set(1.0 if result.success else 0.0)
        if result.duration_seconds is not None:
            self.poll_duration_seconds.labels(source=source).set(result.duration_seconds)
        if not result.success or result.report is None:
            return None

        metrics = reduce_report(result.report)
        self.satellites_visible.labels(source=source).set(float(metrics.visible))
        self.satellites_used.labels(source=source).set(float(metrics.used))
        self.snr_average_db.labels(source=source).set(metrics.snr_avg)
        return metrics

    def render(self) -> str:
        return generate_latest(self.registry).decode("utf-8")
