from .dto import FederatedIdentity, FederatedProviderConfig, PrincipalOut
from .federation import FederatedAssertionVerifier
from .service import CredentialValidator

__all__ = [
    "CredentialValidator",
    "FederatedAssertionVerifier",
    "FederatedIdentity",
    "FederatedProviderConfig",
    "PrincipalOut",
]
