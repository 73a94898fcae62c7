from .recovery_probe import RecoveryProbe

__all__ = ['RecoveryProbe']
