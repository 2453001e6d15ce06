from .service import AccessContext, ResourceGuard

__all__ = ["AccessContext", "ResourceGuard"]
