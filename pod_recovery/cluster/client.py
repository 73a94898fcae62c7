#!/usr/bin/env python3
"""
Cluster Client
==============

Camada fina sobre a API do control plane Kubernetes: lista pods por seletor,
deleta pods (graceful ou forçado), acompanha eventos de ciclo de vida via
watch e lê o status de réplicas de um deployment.

Toda exceção do cliente ``kubernetes`` é traduzida aqui para a hierarquia
de ``core.errors``; nenhum ``ApiException`` escapa deste módulo.
"""

import math
import time
from collections import namedtuple
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.base import EventType, PodEvent, PodRef, logger, utcnow
from ..core.errors import (
    AuthError, ClusterConnectionError, ConfigurationError, NotFoundError, PodRecoveryError
)

ReplicaStatus = namedtuple("ReplicaStatus", ["desired", "ready"])

# Folga entre o timeout do servidor e o timeout de leitura do cliente
WATCH_READ_SLACK_SECONDS = 5


def load_api_client(kubeconfig_path: Optional[str] = None, context: Optional[str] = None) -> client.ApiClient:
    """
    Carrega a configuração do cluster.

    Com kubeconfig ou contexto explícitos usa exatamente esse arquivo;
    caso contrário tenta a configuração in-cluster e cai para o
    kubeconfig padrão.
    """
    try:
        if kubeconfig_path or context:
            return config.new_client_from_config(config_file=kubeconfig_path, context=context)
        try:
            config.load_incluster_config()
        except ConfigException:
            config.load_kube_config()
        return client.ApiClient()
    except (ConfigException, OSError) as e:
        raise AuthError(f"Unable to load Kubernetes configuration: {e}") from e


def pod_ref_from_k8s(pod: client.V1Pod) -> PodRef:
    """Converte um V1Pod em um PodRef imutável"""
    meta = pod.metadata
    status = pod.status

    owner = None
    for owner_ref in meta.owner_references or []:
        if owner_ref.controller:
            owner = owner_ref.name
            break

    conditions = (status.conditions or []) if status else []
    ready = any(c.type == "Ready" and c.status == "True" for c in conditions)

    return PodRef(
        name=meta.name,
        namespace=meta.namespace,
        uid=meta.uid,
        labels=dict(meta.labels or {}),
        owner=owner,
        phase=(status.phase if status and status.phase else "Unknown"),
        ready=ready,
        terminating=meta.deletion_timestamp is not None,
        created=meta.creation_timestamp,
    )


class ClusterClient:
    """
    Cliente do control plane usado pelos probes.

    A mesma conexão é reutilizada entre probes, mas o cliente não deve ser
    usado por mais de um probe ao mesmo tempo.
    """

    def __init__(self,
                 namespace: str = "default",
                 kubeconfig_path: Optional[str] = None,
                 context: Optional[str] = None,
                 retry_attempts: int = 3,
                 retry_wait: float = 0.5,
                 core_v1: Optional[client.CoreV1Api] = None,
                 apps_v1: Optional[client.AppsV1Api] = None,
                 watch_factory: Callable[[], watch.Watch] = watch.Watch,
                 clock: Callable[[], float] = time.monotonic):
        self.namespace = namespace
        self.logger = logger.getChild("ClusterClient")
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait
        self.watch_factory = watch_factory
        self.clock = clock

        self.api_client = None
        if core_v1 is None or apps_v1 is None:
            self.api_client = load_api_client(kubeconfig_path, context)

        self.core_v1 = core_v1 or client.CoreV1Api(self.api_client)
        self.apps_v1 = apps_v1 or client.AppsV1Api(self.api_client)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        if self.api_client is not None:
            self.api_client.close()
            self.api_client = None

    def _retrying(self) -> Retrying:
        """Backoff exponencial limitado para leituras transitórias"""
        return Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=self.retry_wait * 8),
            retry=retry_if_exception_type(ClusterConnectionError),
            before_sleep=lambda state: self.logger.warning(
                f"Transient API failure (attempt {state.attempt_number}/{self.retry_attempts}): "
                f"{state.outcome.exception()}"
            ),
            reraise=True,
        )

    @contextmanager
    def _translate_errors(self, kind: str, name: Optional[str], namespace: Optional[str]):
        try:
            yield
        except ApiException as e:
            raise self._translate_api_exception(e, kind, name, namespace) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ClusterConnectionError(f"Control plane unreachable: {e}") from e

    @staticmethod
    def _translate_api_exception(e: ApiException, kind: str, name: Optional[str],
                                 namespace: Optional[str]) -> PodRecoveryError:
        status = e.status or 0
        if status in (401, 403):
            return AuthError(f"Access to {kind} denied ({status} {e.reason})")
        if status == 404 or (status == 409 and kind == "Pod"):
            # 409 na deleção: a precondição de uid falhou, o pod original já não existe
            return NotFoundError(kind, name or "<list>", namespace)
        if status == 0 or status == 429 or status >= 500:
            return ClusterConnectionError(f"Control plane error ({status} {e.reason})")
        if status in (400, 422):
            return ConfigurationError(f"Request rejected by API server ({status}): {e.reason}")
        return PodRecoveryError(f"Unexpected API error for {kind} ({status} {e.reason})")

    def list_pods(self, namespace: str, label_selector: str) -> List[PodRef]:
        """Lista pods que correspondem ao seletor"""
        for attempt in self._retrying():
            with attempt:
                with self._translate_errors("Pod", None, namespace):
                    pods = self.core_v1.list_namespaced_pod(namespace, label_selector=label_selector)

        refs = [pod_ref_from_k8s(pod) for pod in pods.items]
        self.logger.debug(f"Listed {len(refs)} pods in {namespace} matching '{label_selector}'")
        return refs

    def delete_pod(self, pod: PodRef, graceful: bool = True):
        """
        Deleta um pod.

        Graceful usa o grace period padrão do orquestrador; forçado pede
        término imediato (grace period zero). A precondição de uid impede
        que um substituto com o mesmo nome seja deletado por engano.
        """
        body = client.V1DeleteOptions(preconditions=client.V1Preconditions(uid=pod.uid))
        kwargs = {}
        if not graceful:
            body.grace_period_seconds = 0
            kwargs['grace_period_seconds'] = 0

        with self._translate_errors("Pod", pod.name, pod.namespace):
            self.core_v1.delete_namespaced_pod(pod.name, pod.namespace, body=body, **kwargs)

        self.logger.info(f"Deleted pod {pod} ({'graceful' if graceful else 'forced'})")

    def watch_pods(self, namespace: str, label_selector: str, timeout: float) -> Iterator[PodEvent]:
        """
        Gera eventos de ciclo de vida dos pods até o timeout expirar.

        A sequência é finita e não reiniciável. Se o servidor encerrar o
        stream antes do prazo, o watch é reaberto a partir da última
        resource version vista. Falhas de transporte encerram a sequência
        com ClusterConnectionError. Fechar o gerador encerra o watch e
        libera a conexão subjacente.
        """
        if timeout <= 0:
            return

        deadline = self.clock() + timeout
        resource_version = None

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                return

            kwargs = {
                'label_selector': label_selector,
                'timeout_seconds': max(1, int(math.ceil(remaining))),
                '_request_timeout': remaining + WATCH_READ_SLACK_SECONDS,
            }
            if resource_version:
                kwargs['resource_version'] = resource_version

            pod_watch = self.watch_factory()
            stream = pod_watch.stream(self.core_v1.list_namespaced_pod, namespace, **kwargs)
            try:
                for raw_event in stream:
                    event_type = raw_event.get('type')
                    obj = raw_event.get('object')

                    if event_type == 'ERROR':
                        raise ClusterConnectionError(f"Watch error event: {raw_event.get('raw_object', obj)}")
                    if event_type not in ('ADDED', 'MODIFIED', 'DELETED'):
                        continue

                    resource_version = obj.metadata.resource_version or resource_version
                    pod = pod_ref_from_k8s(obj)
                    yield PodEvent(
                        pod=pod,
                        phase=pod.phase,
                        timestamp=utcnow(),
                        event_type=EventType(event_type),
                    )

                    if self.clock() >= deadline:
                        return
            except ApiException as e:
                if e.status == 410 and resource_version:
                    self.logger.debug("Watch resource version expired, restarting from a fresh list")
                    resource_version = None
                    continue
                raise self._translate_api_exception(e, "Pod", None, namespace) from e
            except urllib3.exceptions.ReadTimeoutError as e:
                if self.clock() >= deadline:
                    return
                raise ClusterConnectionError(f"Watch stalled: {e}") from e
            except (urllib3.exceptions.HTTPError, OSError) as e:
                raise ClusterConnectionError(f"Watch connection lost: {e}") from e
            finally:
                pod_watch.stop()
                close = getattr(stream, 'close', None)
                if close is not None:
                    close()

    def get_replica_status(self, deployment_name: str, namespace: Optional[str] = None) -> ReplicaStatus:
        """Retorna (desired, ready) de um deployment"""
        ns = namespace or self.namespace
        for attempt in self._retrying():
            with attempt:
                with self._translate_errors("Deployment", deployment_name, ns):
                    deployment = self.apps_v1.read_namespaced_deployment(deployment_name, ns)

        desired = deployment.spec.replicas if deployment.spec and deployment.spec.replicas is not None else 1
        ready = (deployment.status.ready_replicas or 0) if deployment.status else 0
        return ReplicaStatus(desired=desired, ready=ready)
