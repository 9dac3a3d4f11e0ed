from .jwks import AuthContext, JWKSAuthenticator
from .query_token import QueryTokenMiddleware

__all__ = ["AuthContext", "JWKSAuthenticator", "QueryTokenMiddleware"]
