from silentauth.models.auth_session import AuthSession, RefreshTokenRecord
from silentauth.models.identity_link import FederatedIdentityLink
from silentauth.models.principal import Principal

__all__ = [
    "AuthSession",
    "FederatedIdentityLink",
    "Principal",
    "RefreshTokenRecord",
]
