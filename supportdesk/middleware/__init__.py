from .principal import PrincipalMiddleware

__all__ = ["PrincipalMiddleware"]
