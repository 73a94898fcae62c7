"""
Pod Recovery Probe
==================

Harness automatizado de verificação de recuperação para Kubernetes: deleta
pods de um workload, mede o tempo até um substituto ficar Ready e confere a
convergência da contagem de réplicas.

Módulos:
- core: modelo de dados, erros, configuração e o harness
- cluster: cliente do control plane
- probes: máquina de estados de um experimento de recuperação
- monitoring: verificação HTTP do serviço
- reports: relatórios JSON, CSV e tabelas
- cli: interface de linha de comando
"""

__version__ = "1.0.0"

from .core.harness import Harness
from .core.config import ConfigManager, HarnessConfig

__all__ = [
    'Harness',
    'ConfigManager',
    'HarnessConfig',
]
