"""
Hierarquia de Erros
===================

Erros levantados pelo harness de verificação de recuperação. Os erros da
família ``FatalClusterError`` abortam a execução inteira; os demais são
registrados como dados no relatório.
"""


class PodRecoveryError(Exception):
    """Erro base do framework"""


class ConfigurationError(PodRecoveryError):
    """Configuração inválida ou incompleta"""


class FatalClusterError(PodRecoveryError):
    """Falha que impede qualquer probe de continuar"""


class ClusterConnectionError(FatalClusterError, ConnectionError):
    """Control plane inacessível ou conexão perdida durante o watch"""


class AuthError(FatalClusterError):
    """Credenciais inválidas ou sem permissão"""


class NotFoundError(PodRecoveryError):
    """Recurso (pod ou deployment) não existe"""

    def __init__(self, kind: str, name: str, namespace: str = None):
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {location} not found")


class NoTargetError(PodRecoveryError):
    """Nenhum pod corresponde ao seletor"""

    def __init__(self, namespace: str, label_selector: str):
        self.namespace = namespace
        self.label_selector = label_selector
        super().__init__(f"No pods match selector '{label_selector}' in namespace '{namespace}'")
