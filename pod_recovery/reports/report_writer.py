"""
Report Writer
=============

Renderização de um relatório concluído. Todas as funções são puras sobre o
``Report`` recebido: não alteram o relatório e só escrevem no sink passado.

Formato JSON (``report_version`` 1), campos sempre nesta ordem::

    {
      "report_version": 1,
      "started_at": "2025-10-01T12:00:00.000+00:00",
      "finished_at": "...",
      "aborted": false,
      "fatal_error": null,
      "exit_code": 0,
      "passed": true,
      "config": {namespace, label_selector, deployment, count, mode,
                 watch_timeout, convergence_timeout, success_threshold,
                 latency_ceiling_ms},
      "summary": {total, succeeded, timed_out, replica_mismatch, no_target,
                  success_ratio, mean_latency_ms, median_latency_ms,
                  max_latency_ms, success_threshold, latency_ceiling_ms,
                  ceiling_violations, passed},
      "results": [
        {sequence, outcome, mode, target, replacement, deleted_at,
         replacement_at, latency_ms, expected_replicas, final_replicas,
         new_pods_observed, service_check, error}
      ]
    }

Pods são objetos ``{name, namespace, uid, owner, labels}`` com labels
ordenadas por chave. Timestamps são ISO-8601 em UTC com milissegundos;
valores ausentes são ``null``.
"""

import csv
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from rich import box
from rich.table import Table

from ..core.base import PodRef, ProbeOutcome, ProbeResult, Report, ReportSummary, ServiceCheck, format_duration

REPORT_VERSION = 1

CONFIG_FIELDS = (
    'namespace', 'label_selector', 'deployment', 'count', 'mode',
    'watch_timeout', 'convergence_timeout', 'success_threshold', 'latency_ceiling_ms',
)

CSV_FIELDS = (
    'sequence', 'outcome', 'mode', 'target', 'target_uid', 'replacement', 'replacement_uid',
    'deleted_at', 'replacement_at', 'latency_ms', 'expected_replicas', 'final_replicas',
    'new_pods_observed', 'service_available', 'error',
)

OUTCOME_STYLES = {
    ProbeOutcome.SUCCESS: "green",
    ProbeOutcome.TIMEOUT: "red",
    ProbeOutcome.REPLICA_MISMATCH: "yellow",
    ProbeOutcome.NO_TARGET: "magenta",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds')


def _pod(pod: Optional[PodRef]) -> Optional[Dict[str, Any]]:
    if pod is None:
        return None
    return {
        'name': pod.name,
        'namespace': pod.namespace,
        'uid': pod.uid,
        'owner': pod.owner,
        'labels': {k: pod.labels[k] for k in sorted(pod.labels)},
    }


def _service_check(check: Optional[ServiceCheck]) -> Optional[Dict[str, Any]]:
    if check is None:
        return None
    return {
        'url': check.url,
        'available': check.available,
        'status_code': check.status_code,
        'response_time_ms': check.response_time_ms,
        'error': check.error,
    }


def _result(result: ProbeResult) -> Dict[str, Any]:
    return {
        'sequence': result.sequence,
        'outcome': result.outcome.value,
        'mode': result.mode.value,
        'target': _pod(result.target),
        'replacement': _pod(result.replacement),
        'deleted_at': _iso(result.deleted_at),
        'replacement_at': _iso(result.replacement_at),
        'latency_ms': result.latency_ms,
        'expected_replicas': result.expected_replicas,
        'final_replicas': result.final_replicas,
        'new_pods_observed': result.new_pods_observed,
        'service_check': _service_check(result.service_check),
        'error': result.error,
    }


def _summary(summary: Optional[ReportSummary]) -> Optional[Dict[str, Any]]:
    if summary is None:
        return None
    return {
        'total': summary.total,
        'succeeded': summary.succeeded,
        'timed_out': summary.timed_out,
        'replica_mismatch': summary.replica_mismatch,
        'no_target': summary.no_target,
        'success_ratio': summary.success_ratio,
        'mean_latency_ms': summary.mean_latency_ms,
        'median_latency_ms': summary.median_latency_ms,
        'max_latency_ms': summary.max_latency_ms,
        'success_threshold': summary.success_threshold,
        'latency_ceiling_ms': summary.latency_ceiling_ms,
        'ceiling_violations': list(summary.ceiling_violations),
        'passed': summary.passed,
    }


def report_to_dict(report: Report) -> Dict[str, Any]:
    """Estrutura serializável do relatório, com ordem de campos estável"""
    return {
        'report_version': REPORT_VERSION,
        'started_at': _iso(report.started_at),
        'finished_at': _iso(report.finished_at),
        'aborted': report.aborted,
        'fatal_error': report.fatal_error,
        'exit_code': report.exit_code,
        'passed': report.passed,
        'config': {key: report.config.get(key) for key in CONFIG_FIELDS},
        'summary': _summary(report.summary),
        'results': [_result(r) for r in report.results],
    }


def render_json(report: Report) -> str:
    return json.dumps(report_to_dict(report), indent=2, ensure_ascii=False) + "\n"


def write_json(report: Report, sink: TextIO):
    sink.write(render_json(report))


def write_csv(report: Report, sink: TextIO):
    """Uma linha por probe, no formato dos relatórios CSV de confiabilidade"""
    writer = csv.DictWriter(sink, fieldnames=CSV_FIELDS)
    writer.writeheader()
    for result in report.results:
        writer.writerow({
            'sequence': result.sequence,
            'outcome': result.outcome.value,
            'mode': result.mode.value,
            'target': str(result.target) if result.target else '',
            'target_uid': result.target.uid if result.target else '',
            'replacement': str(result.replacement) if result.replacement else '',
            'replacement_uid': result.replacement.uid if result.replacement else '',
            'deleted_at': _iso(result.deleted_at) or '',
            'replacement_at': _iso(result.replacement_at) or '',
            'latency_ms': '' if result.latency_ms is None else result.latency_ms,
            'expected_replicas': '' if result.expected_replicas is None else result.expected_replicas,
            'final_replicas': '' if result.final_replicas is None else result.final_replicas,
            'new_pods_observed': result.new_pods_observed,
            'service_available': '' if result.service_check is None else result.service_check.available,
            'error': result.error or '',
        })


def build_table(report: Report) -> Table:
    """Tabela legível com uma linha por probe"""
    table = Table(title="Pod Recovery Probes", box=box.ROUNDED)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Mode")
    table.add_column("Outcome")
    table.add_column("Latency", justify="right", style="green")
    table.add_column("Replicas", justify="right")
    table.add_column("Replacement")

    for result in report.results:
        style = OUTCOME_STYLES[result.outcome]
        replicas = "-"
        if result.expected_replicas is not None:
            final = "?" if result.final_replicas is None else result.final_replicas
            replicas = f"{final}/{result.expected_replicas}"
        table.add_row(
            str(result.sequence),
            result.target.name if result.target else "-",
            result.mode.value,
            f"[{style}]{result.outcome.value}[/{style}]",
            format_duration(result.latency_ms),
            replicas,
            result.replacement.name if result.replacement else "-",
        )

    return table


def summary_line(report: Report) -> str:
    """Linha final com o veredito da execução"""
    summary = report.summary
    done = len(report.results)

    if report.aborted:
        total = report.config.get('count', done)
        return f"ABORTED after {done}/{total} probes: {report.fatal_error}"

    if summary is None:
        return f"INCOMPLETE: {done} probes recorded"

    verdict = "PASS" if report.passed else "FAIL"
    line = (f"{verdict}: {summary.succeeded}/{summary.total} probes succeeded "
            f"({summary.success_ratio:.0%}, threshold {summary.success_threshold:.0%})")
    if summary.mean_latency_ms is not None:
        line += (f", latency mean {format_duration(summary.mean_latency_ms)}"
                 f" median {format_duration(summary.median_latency_ms)}"
                 f" max {format_duration(summary.max_latency_ms)}")
    if summary.ceiling_violations:
        probes = ", ".join(f"#{s}" for s in summary.ceiling_violations)
        line += f", ceiling {summary.latency_ceiling_ms}ms exceeded by {probes}"
    return line
