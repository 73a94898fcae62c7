from .service_checker import ServiceChecker

__all__ = ['ServiceChecker']
