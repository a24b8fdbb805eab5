import pytest
from prometheus_client import CollectorRegistry

from gpssnmp.exporter import (
    MetricKind,
    SatelliteMetrics,
    SatelliteMetricsPublisher,
    lookup_metric,
    reduce_report,
    render_gauge_line,
)
from gpssnmp.service import AcquireFailure, AcquireResult, SatelliteSample, SkyReport


def _report(samples: list[tuple[int, bool, float]], *, used: int, visible: int) -> SkyReport:
    return SkyReport(
        satellites=tuple(SatelliteSample(prn=prn, used=flag, snr=snr) for prn, flag, snr in samples),
        satellites_used=used,
        satellites_visible=visible,
    )


def test_reduce_report_averages_used_snr_over_used_count() -> None:
    report = _report(
        [(2, True, 30.0), (7, True, 25.0), (9, True, 20.0), (13, True, 14.0), (21, False, 40.0)],
        used=4,
        visible=13,
    )
    metrics = reduce_report(report)
    assert metrics == SatelliteMetrics(visible=13, used=4, snr_avg=22.25)


def test_reduce_report_with_no_used_satellites_is_zero() -> None:
    report = _report([(2, False, 30.0), (7, False, 25.0)], used=0, visible=2)
    assert reduce_report(report).snr_avg == 0.0
    assert reduce_report(_report([], used=0, visible=0)).snr_avg == 0.0


def test_reduce_report_skips_unmeasured_and_weak_signals() -> None:
    report = _report([(1, True, 1.0), (2, True, 0.0), (3, True, 33.0)], used=3, visible=3)
    # weak samples still count towards the divisor
    assert reduce_report(report).snr_avg == 11.0


def test_reduce_report_only_scans_first_used_plus_one_samples() -> None:
    report = _report(
        [(1, False, 18.0), (2, True, 40.0), (3, True, 44.0), (4, True, 99.0)],
        used=2,
        visible=4,
    )
    # indices 0..2 inclusive; the used sample at index 3 is outside the window
    assert reduce_report(report).snr_avg == 42.0


def test_reduce_report_stops_at_end_of_short_sample_list() -> None:
    report = _report([(1, True, 30.0)], used=6, visible=6)
    assert reduce_report(report).snr_avg == 5.0


def test_lookup_metric_matches_known_oids_exactly() -> None:
    assert lookup_metric(".1.3.6.1.2.1.25.1.31") is MetricKind.VISIBLE
    assert lookup_metric(".1.3.6.1.2.1.25.1.32") is MetricKind.USED
    assert lookup_metric(".1.3.6.1.2.1.25.1.33") is MetricKind.SNR_AVG


@pytest.mark.parametrize(
    "oid",
    ["", ".1.3.6.1.2.1.25.1.34", "1.3.6.1.2.1.25.1.31", ".1.3.6.1.2.1.25.1.31 ", ".1.3.6.1.2.1.25.1"],
)
def test_lookup_metric_rejects_unknown_oids(oid: str) -> None:
    assert lookup_metric(oid) is None


def test_render_gauge_line_formats() -> None:
    metrics = SatelliteMetrics(visible=13, used=4, snr_avg=22.25)
    assert render_gauge_line(MetricKind.VISIBLE, metrics) == ".1.3.6.1.2.1.25.1.31 = gauge: 13"
    assert render_gauge_line(MetricKind.USED, metrics) == ".1.3.6.1.2.1.25.1.32 = gauge: 4"
    assert render_gauge_line(MetricKind.SNR_AVG, metrics) == ".1.3.6.1.2.1.25.1.33 = gauge: 22.250000"


def test_render_gauge_line_zero_average() -> None:
    metrics = SatelliteMetrics(visible=0, used=0, snr_avg=0.0)
    assert render_gauge_line(MetricKind.SNR_AVG, metrics) == ".1.3.6.1.2.1.25.1.33 = gauge: 0.000000"


def test_metrics_publisher_renders_satellite_gauges() -> None:
    registry = CollectorRegistry()
    publisher = SatelliteMetricsPublisher(registry=registry)
    report = _report([(2, True, 30.0), (7, True, 25.0), (9, True, 20.0), (13, True, 14.0)], used=4, visible=13)

    metrics = publisher.apply_acquire_result(
        source="localhost:2947",
        result=AcquireResult(success=True, report=report, frames_consumed=3, duration_seconds=0.5),
    )

    assert metrics == SatelliteMetrics(visible=13, used=4, snr_avg=22.25)
    rendered = publisher.render()
    assert 'gpsd_poll_success{source="localhost:2947"} 1.0' in rendered
    assert 'gpsd_poll_duration_seconds{source="localhost:2947"} 0.5' in rendered
    assert 'gpsd_satellites_visible{source="localhost:2947"} 13.0' in rendered
    assert 'gpsd_satellites_used{source="localhost:2947"} 4.0' in rendered
    assert 'gpsd_satellites_snr_average_db{source="localhost:2947"} 22.25' in rendered


def test_metrics_publisher_renders_failed_poll_without_satellite_samples() -> None:
    registry = CollectorRegistry()
    publisher = SatelliteMetricsPublisher(registry=registry)

    metrics = publisher.apply_acquire_result(
        source="gps1:2947",
        result=AcquireResult(success=False, failure=AcquireFailure.TIMED_OUT, error="timeout", duration_seconds=15.0),
    )

    assert metrics is None
    rendered = publisher.render()
    assert 'gpsd_poll_success{source="gps1:2947"} 0.0' in rendered
    assert 'gpsd_poll_duration_seconds{source="gps1:2947"} 15.0' in rendered
    assert "gpsd_satellites_visible{" not in rendered
    assert "gpsd_satellites_snr_average_db{" not in rendered
