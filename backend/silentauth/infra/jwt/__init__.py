from .codec import JWTTokenCodec
from .keys import KeyRing

__all__ = ["JWTTokenCodec", "KeyRing"]
