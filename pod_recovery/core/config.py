"""
Configurações
=============

Configuração do harness de verificação de recuperação. Os valores são
aplicados em camadas: padrões do dataclass, variáveis de ambiente
``POD_RECOVERY_*``, arquivo de configuração (JSON ou YAML) e, por fim,
as opções passadas na linha de comando.
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .base import DeletionMode, logger
from .errors import ConfigurationError

TARGET_STRATEGIES = ("random", "oldest", "first")


@dataclass
class HarnessConfig:
    """
    Configurações de uma execução do harness.
    """
    # Alvo no cluster
    namespace: str = "default"
    label_selector: str = ""
    deployment: str = ""

    # Experimento
    count: int = 3
    mode: str = DeletionMode.GRACEFUL.value
    strategy: str = "random"
    seed: Optional[int] = None
    interval: float = 0.0  # pausa entre probes (s)

    # Timeouts
    watch_timeout: float = 60.0  # espera pelo substituto Ready (s)
    convergence_timeout: float = 60.0  # espera pela contagem de réplicas (s)
    poll_interval: float = 1.0

    # Critérios de aprovação
    success_threshold: float = 1.0
    latency_ceiling_ms: Optional[int] = None

    # Verificação HTTP opcional do serviço
    service_url: Optional[str] = None
    service_timeout: float = 5.0

    # Cliente Kubernetes
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    retry_attempts: int = 3
    retry_wait: float = 0.5

    # Saída
    output: str = "recovery_report.json"
    csv_output: Optional[str] = None
    log_level: str = "INFO"

    @property
    def deletion_mode(self) -> DeletionMode:
        return DeletionMode(self.mode)

    def validate(self) -> "HarnessConfig":
        """Valida a configuração, levantando ConfigurationError no primeiro problema"""
        if not self.label_selector:
            raise ConfigurationError("A label selector is required (--selector)")
        if not self.deployment:
            raise ConfigurationError("A deployment name is required (--deployment)")
        if self.count < 1:
            raise ConfigurationError(f"count must be >= 1, got {self.count}")
        if self.mode not in [m.value for m in DeletionMode]:
            raise ConfigurationError(f"Unknown deletion mode: {self.mode}")
        if self.strategy not in TARGET_STRATEGIES:
            raise ConfigurationError(f"Unknown target strategy: {self.strategy}")
        for name in ("watch_timeout", "convergence_timeout", "interval", "service_timeout", "retry_wait"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be >= 0")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be > 0")
        if not 0.0 <= self.success_threshold <= 1.0:
            raise ConfigurationError("success_threshold must be between 0 and 1")
        if self.latency_ceiling_ms is not None and self.latency_ceiling_ms < 0:
            raise ConfigurationError("latency_ceiling_ms must be >= 0")
        if self.retry_attempts < 1:
            raise ConfigurationError("retry_attempts must be >= 1")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _optional_str(value: str) -> Optional[str]:
    return value or None


def _coerce(name: str, field_type, value):
    """Converte um valor de arquivo ou CLI para o tipo declarado do campo"""
    # Optional[X] -> X
    args = [a for a in getattr(field_type, '__args__', ()) if a is not type(None)]
    target = args[0] if args else field_type

    if isinstance(value, bool) or isinstance(value, (dict, list)):
        raise ConfigurationError(f"Invalid value for {name}: expected {target.__name__}, got {value!r}")
    if isinstance(value, target):
        return value
    try:
        if target is int and isinstance(value, float):
            if not value.is_integer():
                raise ValueError(f"{value} is not an integer")
            return int(value)
        return target(value)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {e}") from e


class ConfigManager:
    """
    Gerenciador de configurações do harness.

    Carrega configurações de variáveis de ambiente e de arquivo, e permite
    sobrepor valores vindos da CLI.
    """

    ENV_PREFIX = "POD_RECOVERY_"

    ENV_MAPPINGS = {
        'NAMESPACE': ('namespace', str),
        'SELECTOR': ('label_selector', str),
        'DEPLOYMENT': ('deployment', str),
        'COUNT': ('count', int),
        'MODE': ('mode', str),
        'STRATEGY': ('strategy', str),
        'WATCH_TIMEOUT': ('watch_timeout', float),
        'CONVERGENCE_TIMEOUT': ('convergence_timeout', float),
        'POLL_INTERVAL': ('poll_interval', float),
        'SUCCESS_THRESHOLD': ('success_threshold', float),
        'LATENCY_CEILING_MS': ('latency_ceiling_ms', int),
        'SERVICE_URL': ('service_url', _optional_str),
        'KUBECONFIG': ('kubeconfig', _optional_str),
        'CONTEXT': ('context', _optional_str),
        'RETRY_ATTEMPTS': ('retry_attempts', int),
        'RETRY_WAIT': ('retry_wait', float),
        'INTERVAL': ('interval', float),
        'SEED': ('seed', int),
        'SERVICE_TIMEOUT': ('service_timeout', float),
        'OUTPUT': ('output', str),
        'CSV_OUTPUT': ('csv_output', _optional_str),
        'LOG_LEVEL': ('log_level', str),
    }

    def __init__(self, config_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.config = HarnessConfig()
        self.config_file = config_file
        self.logger = logger.getChild("ConfigManager")
        self._load_from_environment(os.environ if environ is None else environ)

        if config_file:
            self._load_from_file(config_file)

    def _load_from_environment(self, environ: Mapping[str, str]):
        """Carrega configurações de variáveis de ambiente"""
        for suffix, (attr_name, type_func) in self.ENV_MAPPINGS.items():
            env_var = self.ENV_PREFIX + suffix
            env_value = environ.get(env_var)
            if env_value is None:
                continue
            try:
                setattr(self.config, attr_name, type_func(env_value))
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {e}") from e

    def _load_from_file(self, config_file: str):
        """Carrega configurações de arquivo JSON ou YAML"""
        path = Path(config_file)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")

        try:
            with open(path, 'r') as f:
                if path.suffix in ('.yaml', '.yml'):
                    file_config = yaml.safe_load(f) or {}
                else:
                    file_config = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error loading config file {config_file}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a mapping")

        self.update(**file_config)

    def update(self, **overrides) -> HarnessConfig:
        """
        Sobrepõe valores. Chaves com valor None são ignoradas para que opções
        não informadas na CLI preservem as camadas anteriores.
        """
        known = {f.name: f.type for f in fields(HarnessConfig)}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in known:
                self.logger.warning(f"Unknown configuration key ignored: {key}")
                continue
            setattr(self.config, key, _coerce(key, known[key], value))
        return self.config

    def get_config(self) -> HarnessConfig:
        return self.config
