#!/usr/bin/env python3
"""
Pod Recovery Probe - Modelo de Dados
====================================

Tipos compartilhados pelo harness de verificação de recuperação:
referências de pods, eventos do watch, resultados de probes e o relatório
agregado de uma execução.

Autor: Jonas
Data: Outubro 2025
"""

import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("pod_recovery")

# Códigos de saída da CLI
EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def setup_logging(level: str = "INFO"):
    """Configura o logging do framework"""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logger.setLevel(level.upper())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeletionMode(Enum):
    """Modo de deleção do pod alvo"""
    GRACEFUL = "graceful"
    FORCED = "forced"

    @property
    def graceful(self) -> bool:
        return self is DeletionMode.GRACEFUL


class ProbeOutcome(Enum):
    """Resultado final de um probe"""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    REPLICA_MISMATCH = "replica-mismatch"
    NO_TARGET = "no-target"


class ProbeState(Enum):
    """Estados da máquina de estados de um probe"""
    IDLE = "idle"
    TARGET_SELECTED = "target_selected"
    DELETED = "deleted"
    WAITING_REPLACEMENT = "waiting_replacement"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"


class EventType(Enum):
    """Tipos de evento emitidos pelo watch de pods"""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class PodRef:
    """
    Snapshot imutável de um pod no momento da observação.

    A identidade é o ``uid``: um StatefulSet recria o pod com o mesmo nome,
    então o nome sozinho não distingue o substituto do original. Fase,
    prontidão e término são informativos e não entram na comparação. As
    labels entram na igualdade mas não no hash, para que o PodRef possa ser
    usado em sets e como chave de dicionário.
    """
    name: str
    namespace: str
    uid: str
    labels: Dict[str, str] = field(default_factory=dict, hash=False)
    owner: Optional[str] = None
    phase: str = field(default="Unknown", compare=False)
    ready: bool = field(default=False, compare=False)
    terminating: bool = field(default=False, compare=False)
    created: Optional[datetime] = field(default=None, compare=False)

    @property
    def identity(self) -> Tuple[str, str, str]:
        return (self.namespace, self.name, self.uid)

    def same_workload(self, other: "PodRef") -> bool:
        """Mesmo conjunto de labels e mesmo controller dono"""
        return self.labels == other.labels and self.owner == other.owner

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class PodEvent:
    """Evento de ciclo de vida de um pod observado pelo watch"""
    pod: PodRef
    phase: str
    timestamp: datetime
    event_type: EventType = EventType.MODIFIED

    @property
    def is_ready(self) -> bool:
        return (self.event_type is not EventType.DELETED
                and self.phase == "Running"
                and self.pod.ready)


@dataclass(frozen=True)
class ServiceCheck:
    """Resultado de uma verificação HTTP do serviço após a recuperação"""
    url: str
    available: bool
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """Resultado de um experimento de recuperação"""
    sequence: int
    outcome: ProbeOutcome
    mode: DeletionMode
    target: Optional[PodRef] = None
    replacement: Optional[PodRef] = None
    deleted_at: Optional[datetime] = None
    replacement_at: Optional[datetime] = None
    latency_ms: Optional[int] = None
    expected_replicas: Optional[int] = None
    final_replicas: Optional[int] = None
    new_pods_observed: int = 0
    service_check: Optional[ServiceCheck] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ProbeOutcome.SUCCESS


@dataclass(frozen=True)
class ReportSummary:
    """Estatísticas agregadas de uma execução"""
    total: int
    succeeded: int
    timed_out: int
    replica_mismatch: int
    no_target: int
    success_ratio: float
    mean_latency_ms: Optional[float]
    median_latency_ms: Optional[float]
    max_latency_ms: Optional[int]
    success_threshold: float
    latency_ceiling_ms: Optional[int]
    ceiling_violations: Tuple[int, ...] = ()
    passed: bool = False

    @classmethod
    def from_results(cls, results: List[ProbeResult], success_threshold: float = 1.0,
                     latency_ceiling_ms: Optional[int] = None, aborted: bool = False) -> "ReportSummary":
        """
        Calcula as estatísticas de latência (apenas probes com sucesso) e o
        veredito: passa se a taxa de sucesso atinge o limiar e nenhuma
        latência observada ultrapassa o teto. Uma execução abortada nunca
        passa, mesmo que os probes concluídos tenham tido sucesso.
        """
        counts = {outcome: 0 for outcome in ProbeOutcome}
        for result in results:
            counts[result.outcome] += 1

        latencies = [r.latency_ms for r in results if r.succeeded and r.latency_ms is not None]
        violations = tuple(
            r.sequence for r in results
            if latency_ceiling_ms is not None
            and r.latency_ms is not None
            and r.latency_ms > latency_ceiling_ms
        )

        total = len(results)
        ratio = counts[ProbeOutcome.SUCCESS] / total if total else 0.0

        return cls(
            total=total,
            succeeded=counts[ProbeOutcome.SUCCESS],
            timed_out=counts[ProbeOutcome.TIMEOUT],
            replica_mismatch=counts[ProbeOutcome.REPLICA_MISMATCH],
            no_target=counts[ProbeOutcome.NO_TARGET],
            success_ratio=ratio,
            mean_latency_ms=statistics.mean(latencies) if latencies else None,
            median_latency_ms=statistics.median(latencies) if latencies else None,
            max_latency_ms=max(latencies) if latencies else None,
            success_threshold=success_threshold,
            latency_ceiling_ms=latency_ceiling_ms,
            ceiling_violations=violations,
            passed=not aborted and total > 0 and ratio >= success_threshold and not violations,
        )


class Report:
    """
    Relatório de uma execução do harness.

    Os resultados só podem ser acrescentados; ``results`` devolve uma tupla
    para que nenhum consumidor altere a sequência registrada.
    """

    def __init__(self, config: Dict[str, Any], started_at: Optional[datetime] = None):
        self.config = dict(config)
        self.started_at = started_at or utcnow()
        self.finished_at: Optional[datetime] = None
        self.summary: Optional[ReportSummary] = None
        self.aborted = False
        self.fatal_error: Optional[str] = None
        self.exit_code: Optional[int] = None
        self._results: List[ProbeResult] = []

    @property
    def results(self) -> Tuple[ProbeResult, ...]:
        return tuple(self._results)

    def append(self, result: ProbeResult):
        if self.finished_at is not None:
            raise RuntimeError("Report already finalized")
        self._results.append(result)

    def abort(self, reason: str):
        self.aborted = True
        self.fatal_error = reason

    def finalize(self, summary: ReportSummary, exit_code: int, finished_at: Optional[datetime] = None):
        self.summary = summary
        self.exit_code = exit_code
        self.finished_at = finished_at or utcnow()

    @property
    def passed(self) -> bool:
        return self.exit_code == EXIT_PASS


def format_duration(milliseconds: Optional[float]) -> str:
    """Formata uma latência em milissegundos de forma legível"""
    if milliseconds is None:
        return "-"
    if milliseconds < 1000:
        return f"{milliseconds:.0f}ms"
    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.2f}s"
    return f"{seconds/60:.2f}m"
