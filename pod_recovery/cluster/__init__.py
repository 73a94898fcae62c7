from .client import ClusterClient, ReplicaStatus, pod_ref_from_k8s

__all__ = ['ClusterClient', 'ReplicaStatus', 'pod_ref_from_k8s']
