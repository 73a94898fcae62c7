"""
Verificador de Serviço
======================

Verificação HTTP da aplicação depois que o deployment se recupera. É a
versão automatizada do passo manual de acessar o servidor web para
confirmar que ele continua respondendo.
"""

import time
from typing import Callable, Optional

import requests

from ..core.base import ServiceCheck, logger


class ServiceChecker:
    """
    ⚕️ Verificador de disponibilidade HTTP

    Considera o serviço disponível quando a resposta tem status < 500.
    """

    def __init__(self, url: str, timeout: float = 5.0,
                 session: Optional[requests.Session] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock
        self.logger = logger.getChild("ServiceChecker")

    def check(self) -> ServiceCheck:
        start = self.clock()
        try:
            response = self.session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            self.logger.warning(f"Service check failed for {self.url}: {e}")
            return ServiceCheck(url=self.url, available=False, error=str(e))

        elapsed_ms = int(round((self.clock() - start) * 1000))
        available = response.status_code < 500
        self.logger.debug(f"Service check {self.url}: HTTP {response.status_code} in {elapsed_ms}ms")
        return ServiceCheck(
            url=self.url,
            available=available,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
        )

    def close(self):
        self.session.close()
