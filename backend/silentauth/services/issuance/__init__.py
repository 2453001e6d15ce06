from .dto import AuthTokenConfig, TokenBundleOut
from .service import TokenIssuanceService

__all__ = ["AuthTokenConfig", "TokenBundleOut", "TokenIssuanceService"]
