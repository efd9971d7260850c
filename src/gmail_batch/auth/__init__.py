"""OAuth sign-in and session resolution."""

from .gate import SessionGate, build_credentials
from .google_oauth import GoogleOAuthClient, OAuthError

__all__ = ["GoogleOAuthClient", "OAuthError", "SessionGate", "build_credentials"]
