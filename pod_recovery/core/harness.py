#!/usr/bin/env python3
"""
Harness
=======

Orquestra uma execução: roda N probes em sequência (nunca em paralelo, para
que a latência de cada substituto seja atribuível a uma única deleção),
acumula os resultados no relatório e calcula o veredito.

Falhas de probe são dados, não interrupções. Só erros fatais de cluster
(conexão, autenticação, deployment inexistente) ou uma interrupção do
operador encerram a execução antes do fim, e mesmo assim o relatório
parcial é devolvido.
"""

import random
import time
from typing import Callable, Optional

from ..cluster.client import ClusterClient
from ..monitoring.service_checker import ServiceChecker
from ..probes.recovery_probe import RecoveryProbe
from .base import (
    EXIT_FAIL, EXIT_FATAL, EXIT_INTERRUPTED, EXIT_PASS, Report, ReportSummary, logger, utcnow
)
from .config import HarnessConfig
from .errors import PodRecoveryError


class Harness:
    """Executor sequencial de probes de recuperação"""

    def __init__(self, cluster: ClusterClient, config: HarnessConfig,
                 service_checker: Optional[ServiceChecker] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 now=utcnow):
        self.cluster = cluster
        self.config = config
        self.clock = clock
        self.sleep = sleep
        self.now = now
        self.logger = logger.getChild("Harness")

        self._owns_checker = service_checker is None and bool(config.service_url)
        if self._owns_checker:
            service_checker = ServiceChecker(config.service_url, timeout=config.service_timeout)
        self.service_checker = service_checker

    def run(self) -> Report:
        cfg = self.config
        report = Report(cfg.to_dict(), started_at=self.now())
        rng = random.Random(cfg.seed)
        exit_code = None

        self.logger.info(
            f"Starting {cfg.count} {cfg.mode} probes against deployment "
            f"{cfg.namespace}/{cfg.deployment} (selector '{cfg.label_selector}')"
        )

        try:
            self._preflight()
            for sequence in range(1, cfg.count + 1):
                if sequence > 1 and cfg.interval > 0:
                    self.sleep(cfg.interval)

                probe = RecoveryProbe(
                    sequence, self.cluster, cfg,
                    service_checker=self.service_checker,
                    rng=rng, clock=self.clock, sleep=self.sleep, now=self.now,
                )
                result = probe.run()
                report.append(result)
                self.logger.info(
                    f"Probe #{sequence}/{cfg.count}: {result.outcome.value}"
                    + (f" ({result.latency_ms}ms)" if result.latency_ms is not None else "")
                )
        except PodRecoveryError as e:
            self.logger.error(f"Fatal error, aborting run: {e}")
            report.abort(f"{type(e).__name__}: {e}")
            exit_code = EXIT_FATAL
        except KeyboardInterrupt:
            self.logger.warning("Run interrupted by operator")
            report.abort("Interrupted by operator")
            exit_code = EXIT_INTERRUPTED
        finally:
            if self._owns_checker:
                self.service_checker.close()

        summary = ReportSummary.from_results(
            list(report.results), cfg.success_threshold, cfg.latency_ceiling_ms, aborted=report.aborted
        )
        if exit_code is None:
            exit_code = EXIT_PASS if summary.passed else EXIT_FAIL

        report.finalize(summary, exit_code, finished_at=self.now())
        return report

    def _preflight(self):
        """Confere que o deployment existe antes de deletar qualquer pod"""
        status = self.cluster.get_replica_status(self.config.deployment, self.config.namespace)
        self.logger.info(
            f"Deployment {self.config.deployment}: {status.ready}/{status.desired} replicas ready"
        )
        if status.ready != status.desired:
            self.logger.warning("Deployment is not fully ready before the first probe")
