from .dto import TokenPair, TokenValidation
from .service import TokenPolicy, TokenService

__all__ = ["TokenPair", "TokenPolicy", "TokenService", "TokenValidation"]
