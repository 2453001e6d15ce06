from .service import PrincipalService

__all__ = ["PrincipalService"]
