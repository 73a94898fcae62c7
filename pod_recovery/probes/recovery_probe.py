#!/usr/bin/env python3
"""
Recovery Probe
==============

Executa um experimento de recuperação: escolhe um pod alvo, deleta, acompanha
o watch até um substituto ficar Ready e confere se o deployment volta à
contagem de réplicas esperada.

Máquina de estados:

    Idle -> TargetSelected -> Deleted -> WaitingReplacement -> {Succeeded | TimedOut}

A latência é medida com relógio monotônico entre o retorno da chamada de
deleção e a observação do evento Ready do substituto, em milissegundos.
"""

import random
import time
from datetime import timedelta
from typing import Callable, List, Optional, Set, Tuple

from ..cluster.client import ClusterClient
from ..core.base import (
    DeletionMode, PodRef, ProbeOutcome, ProbeResult, ProbeState, logger, utcnow
)
from ..core.config import HarnessConfig
from ..core.errors import NoTargetError, NotFoundError
from ..monitoring.service_checker import ServiceChecker


class RecoveryProbe:
    """Um experimento de recuperação. Cada instância executa uma única vez."""

    def __init__(self, sequence: int, cluster: ClusterClient, config: HarnessConfig,
                 service_checker: Optional[ServiceChecker] = None,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 now=utcnow):
        self.sequence = sequence
        self.cluster = cluster
        self.config = config
        self.service_checker = service_checker
        self.rng = rng or random.Random(config.seed)
        self.clock = clock
        self.sleep = sleep
        self.now = now
        self.logger = logger.getChild("RecoveryProbe")

        self.state = ProbeState.IDLE
        self.transitions: List[ProbeState] = [ProbeState.IDLE]

    def _transition(self, state: ProbeState):
        self.logger.debug(f"Probe #{self.sequence}: {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    def run(self) -> ProbeResult:
        if self.state is not ProbeState.IDLE:
            raise RuntimeError(f"Probe #{self.sequence} already ran")

        cfg = self.config
        mode = cfg.deletion_mode

        # Contagem esperada fixa durante todo o probe
        expected = self.cluster.get_replica_status(cfg.deployment, cfg.namespace).desired

        try:
            target, known_uids = self._select_target()
        except NoTargetError as e:
            self.logger.warning(f"Probe #{self.sequence}: {e}")
            return ProbeResult(
                sequence=self.sequence,
                outcome=ProbeOutcome.NO_TARGET,
                mode=mode,
                expected_replicas=expected,
                error=str(e),
            )
        self._transition(ProbeState.TARGET_SELECTED)

        deleted_clock, deleted_at = self._delete(target, mode)
        self._transition(ProbeState.DELETED)

        self._transition(ProbeState.WAITING_REPLACEMENT)
        replacement, ready_clock, new_pods = self._wait_for_replacement(target, known_uids, deleted_clock)

        if replacement is None:
            self._transition(ProbeState.TIMED_OUT)
            final = self.cluster.get_replica_status(cfg.deployment, cfg.namespace).ready
            self.logger.warning(
                f"Probe #{self.sequence}: no Ready replacement for {target} within {cfg.watch_timeout}s"
            )
            return ProbeResult(
                sequence=self.sequence,
                outcome=ProbeOutcome.TIMEOUT,
                mode=mode,
                target=target,
                deleted_at=deleted_at,
                expected_replicas=expected,
                final_replicas=final,
                new_pods_observed=new_pods,
                error=f"No Ready replacement within {cfg.watch_timeout}s",
            )

        self._transition(ProbeState.SUCCEEDED)
        latency_ms = int(round((ready_clock - deleted_clock) * 1000))
        self.logger.info(f"Probe #{self.sequence}: {replacement} replaced {target} in {latency_ms}ms")

        converged, final = self._wait_for_convergence(expected)
        service_check = self.service_checker.check() if self.service_checker else None

        outcome = ProbeOutcome.SUCCESS if converged else ProbeOutcome.REPLICA_MISMATCH
        error = None
        if not converged:
            error = f"Replica count {final} did not converge to {expected} within {cfg.convergence_timeout}s"
            self.logger.warning(f"Probe #{self.sequence}: {error}")

        return ProbeResult(
            sequence=self.sequence,
            outcome=outcome,
            mode=mode,
            target=target,
            replacement=replacement,
            deleted_at=deleted_at,
            replacement_at=deleted_at + timedelta(milliseconds=latency_ms),
            latency_ms=latency_ms,
            expected_replicas=expected,
            final_replicas=final,
            new_pods_observed=new_pods,
            service_check=service_check,
            error=error,
        )

    def _select_target(self) -> Tuple[PodRef, Set[str]]:
        """Escolhe o pod alvo e memoriza todos os uids já existentes"""
        cfg = self.config
        pods = self.cluster.list_pods(cfg.namespace, cfg.label_selector)

        alive = [p for p in pods if not p.terminating]
        candidates = [p for p in alive if p.ready] or alive
        if not candidates:
            raise NoTargetError(cfg.namespace, cfg.label_selector)

        if cfg.strategy == "oldest":
            dated = [p for p in candidates if p.created is not None]
            target = min(dated, key=lambda p: p.created) if dated else candidates[0]
        elif cfg.strategy == "first":
            target = candidates[0]
        else:
            target = self.rng.choice(candidates)

        self.logger.info(f"Probe #{self.sequence}: selected {target} (owner={target.owner})")
        return target, {p.uid for p in pods}

    def _delete(self, target: PodRef, mode: DeletionMode):
        try:
            self.cluster.delete_pod(target, graceful=mode.graceful)
        except NotFoundError:
            self.logger.info(f"Probe #{self.sequence}: {target} already gone, treating as deleted")
        return self.clock(), self.now()

    def _wait_for_replacement(self, target: PodRef, known_uids: Set[str],
                              deleted_clock: float) -> Tuple[Optional[PodRef], Optional[float], int]:
        """
        Consome eventos do watch até um pod novo do mesmo workload ficar
        Ready. Em caso de churn vence o primeiro a ficar Ready; os demais só
        entram na contagem de pods novos.
        """
        cfg = self.config
        new_pods = {}

        remaining = cfg.watch_timeout - (self.clock() - deleted_clock)
        if remaining <= 0:
            return None, None, 0

        events = self.cluster.watch_pods(cfg.namespace, cfg.label_selector, remaining)
        try:
            for event in events:
                observed = self.clock()
                if observed - deleted_clock > cfg.watch_timeout:
                    break

                pod = event.pod
                if pod.uid in known_uids or not pod.same_workload(target):
                    continue

                new_pods[pod.uid] = pod
                if event.is_ready:
                    return pod, observed, len(new_pods)
        finally:
            close = getattr(events, 'close', None)
            if close is not None:
                close()

        return None, None, len(new_pods)

    def _wait_for_convergence(self, expected: int) -> Tuple[bool, int]:
        """Consulta o status de réplicas até ready == desired == esperado"""
        cfg = self.config
        deadline = self.clock() + cfg.convergence_timeout

        while True:
            status = self.cluster.get_replica_status(cfg.deployment, cfg.namespace)
            if status.ready == expected and status.desired == expected:
                return True, status.ready
            if self.clock() >= deadline:
                return False, status.ready
            self.sleep(min(cfg.poll_interval, max(0.0, deadline - self.clock())))
