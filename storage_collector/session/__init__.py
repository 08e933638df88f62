"""Session management and authentication strategies."""

from .manager import Session, SessionManager, SessionHandle
from .auth import (
    Authenticator, BasicAuthenticator, BearerTokenAuthenticator,
    CookieLoginAuthenticator, TokenLoginAuthenticator
)

__all__ = ['Session', 'SessionManager', 'SessionHandle', 'Authenticator', 'BasicAuthenticator',
           'BearerTokenAuthenticator', 'CookieLoginAuthenticator', 'TokenLoginAuthenticator']
