"""
Testes dos relatórios JSON, CSV e da tabela.
"""

import csv
import io
import json
from datetime import datetime, timedelta

from conftest import BASE_TIME, make_pod
from pod_recovery.core.base import (
    EXIT_FAIL, EXIT_FATAL, EXIT_PASS, DeletionMode, ProbeOutcome, ProbeResult, Report, ReportSummary,
    ServiceCheck,
)
from pod_recovery.core.config import HarnessConfig
from pod_recovery.reports.report_writer import (
    CSV_FIELDS, build_table, render_json, report_to_dict, summary_line, write_csv, write_json
)


def success(sequence, latency_ms, **kwargs):
    deleted_at = BASE_TIME + timedelta(seconds=sequence * 10)
    return ProbeResult(
        sequence=sequence,
        outcome=ProbeOutcome.SUCCESS,
        mode=DeletionMode.GRACEFUL,
        target=make_pod(f"web-{sequence}", labels={"pod-template-hash": "7d4b9c", "app": "web"}),
        replacement=make_pod(f"web-new-{sequence}"),
        deleted_at=deleted_at,
        replacement_at=deleted_at + timedelta(milliseconds=latency_ms),
        latency_ms=latency_ms,
        expected_replicas=3,
        final_replicas=3,
        new_pods_observed=1,
        **kwargs
    )


def timeout(sequence):
    return ProbeResult(
        sequence=sequence,
        outcome=ProbeOutcome.TIMEOUT,
        mode=DeletionMode.FORCED,
        target=make_pod(f"web-{sequence}"),
        deleted_at=BASE_TIME,
        expected_replicas=3,
        final_replicas=2,
        error="No Ready replacement within 5.0s",
    )


def build_report(results, exit_code=None, count=None, threshold=1.0, ceiling=None):
    config = HarnessConfig(label_selector="app=web", deployment="web", count=count or len(results),
                           success_threshold=threshold, latency_ceiling_ms=ceiling)
    report = Report(config.to_dict(), started_at=BASE_TIME)
    for result in results:
        report.append(result)
    summary = ReportSummary.from_results(results, threshold, ceiling)
    if exit_code is None:
        exit_code = EXIT_PASS if summary.passed else EXIT_FAIL
    report.finalize(summary, exit_code, finished_at=BASE_TIME + timedelta(minutes=1))
    return report


class TestJsonReport:

    def test_rendering_is_deterministic(self):
        report = build_report([success(1, 1500), timeout(2)])

        assert render_json(report) == render_json(report)

    def test_top_level_field_order(self):
        data = json.loads(render_json(build_report([success(1, 1500)])))

        assert list(data) == [
            'report_version', 'started_at', 'finished_at', 'aborted', 'fatal_error',
            'exit_code', 'passed', 'config', 'summary', 'results',
        ]
        assert data['report_version'] == 1

    def test_timestamps_are_utc_with_milliseconds(self):
        data = json.loads(render_json(build_report([success(1, 1500)])))
        result = data['results'][0]

        assert data['started_at'] == "2025-10-01T12:00:00.000+00:00"
        assert result['deleted_at'] == "2025-10-01T12:00:10.000+00:00"
        assert result['replacement_at'] == "2025-10-01T12:00:11.500+00:00"

    def test_naive_timestamps_are_treated_as_utc(self):
        report = build_report([])
        report.started_at = datetime(2025, 10, 1, 12, 0, 0)

        assert report_to_dict(report)['started_at'] == "2025-10-01T12:00:00.000+00:00"

    def test_labels_are_sorted(self):
        data = json.loads(render_json(build_report([success(1, 1500)])))

        assert list(data['results'][0]['target']['labels']) == ["app", "pod-template-hash"]

    def test_timeout_has_null_latency(self):
        data = json.loads(render_json(build_report([timeout(1)])))
        result = data['results'][0]

        assert result['outcome'] == "timeout"
        assert result['mode'] == "forced"
        assert result['latency_ms'] is None
        assert result['replacement'] is None
        assert result['replacement_at'] is None
        assert data['passed'] is False

    def test_summary_and_config(self):
        data = json.loads(render_json(build_report([success(1, 1500), success(2, 2500)])))

        assert data['summary']['mean_latency_ms'] == 2000
        assert data['summary']['ceiling_violations'] == []
        assert data['config']['label_selector'] == "app=web"
        assert 'kubeconfig' not in data['config']

    def test_service_check_serialized(self):
        check = ServiceCheck(url="http://web", available=True, status_code=200, response_time_ms=12)
        data = json.loads(render_json(build_report([success(1, 1500, service_check=check)])))

        assert data['results'][0]['service_check'] == {
            'url': "http://web", 'available': True, 'status_code': 200,
            'response_time_ms': 12, 'error': None,
        }

    def test_write_json_to_sink(self):
        report = build_report([success(1, 1500)])
        sink = io.StringIO()

        write_json(report, sink)

        assert sink.getvalue() == render_json(report)

    def test_aborted_report(self):
        report = build_report([success(1, 1500)], exit_code=EXIT_FATAL, count=3)
        report.abort("ClusterConnectionError: stream reset")

        data = json.loads(render_json(report))

        assert data['aborted'] is True
        assert data['fatal_error'] == "ClusterConnectionError: stream reset"
        assert data['exit_code'] == EXIT_FATAL
        assert len(data['results']) == 1


class TestCsvReport:

    def test_one_row_per_probe(self):
        sink = io.StringIO()
        write_csv(build_report([success(1, 1500), timeout(2)]), sink)

        rows = list(csv.DictReader(io.StringIO(sink.getvalue())))

        assert tuple(rows[0]) == CSV_FIELDS
        assert len(rows) == 2
        assert rows[0]['latency_ms'] == "1500"
        assert rows[0]['target'] == "default/web-1"
        assert rows[1]['latency_ms'] == ""
        assert rows[1]['replacement'] == ""
        assert rows[1]['error'] == "No Ready replacement within 5.0s"


class TestTable:

    def test_table_rows(self):
        table = build_table(build_report([success(1, 1500), timeout(2)]))

        assert table.row_count == 2
        assert len(table.columns) == 7


class TestSummaryLine:

    def test_pass(self):
        line = summary_line(build_report([success(1, 1500), success(2, 2500)]))

        assert line.startswith("PASS: 2/2 probes succeeded (100%, threshold 100%)")
        assert "mean 2.00s" in line

    def test_fail_with_ceiling_violation(self):
        line = summary_line(build_report([success(1, 1500), success(2, 2500)], ceiling=2000))

        assert line.startswith("FAIL: 2/2")
        assert "ceiling 2000ms exceeded by #2" in line

    def test_fail_without_successes_has_no_latency(self):
        line = summary_line(build_report([timeout(1)]))

        assert line.startswith("FAIL: 0/1")
        assert "latency" not in line

    def test_aborted(self):
        report = build_report([success(1, 1500)], exit_code=EXIT_FATAL, count=3)
        report.abort("AuthError: forbidden")

        assert summary_line(report) == "ABORTED after 1/3 probes: AuthError: forbidden"
