"""
Token authentication for extension hosts connecting over HTTP.

Usage:
    # Server generates a token on first run
    tabhub --port 8080
    # Token: abc123... (saved to ~/.tabhub/token)

    # Hosts send it as a header, or as ?token= for EventSource clients
    Authorization: Bearer abc123...
"""

import secrets
from pathlib import Path
from typing import Optional

from .config import Config


class TokenAuth:
    """Shared-secret token check."""

    TOKEN_FILE = Config.HOME / "token"
    TOKEN_LENGTH = 32

    def __init__(self, token: Optional[str] = None, token_file: Optional[Path] = None):
        self._token = token
        self.token_file = token_file or self.TOKEN_FILE

    @property
    def token(self) -> str:
        """Get, load, or create the token."""
        if self._token:
            return self._token
        if self.token_file.exists():
            self._token = self.token_file.read_text().strip()
        if not self._token:
            self._token = self.generate(self.token_file)
        return self._token

    @classmethod
    def generate(cls, token_file: Optional[Path] = None, save: bool = True) -> str:
        token = secrets.token_urlsafe(cls.TOKEN_LENGTH)
        if save:
            path = token_file or cls.TOKEN_FILE
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(token)
            path.chmod(0o600)
        return token

    @classmethod
    def load(cls, token_file: Optional[Path] = None) -> Optional[str]:
        path = token_file or cls.TOKEN_FILE
        if path.exists():
            return path.read_text().strip() or None
        return None

    @classmethod
    def reset(cls, token_file: Optional[Path] = None) -> str:
        path = token_file or cls.TOKEN_FILE
        if path.exists():
            path.unlink()
        return cls.generate(path)

    def verify(self, provided: Optional[str]) -> bool:
        if not provided:
            return False
        return secrets.compare_digest(provided.encode(), self.token.encode())


def create_auth_middleware(auth: TokenAuth, exempt=("/health",)):
    """Starlette middleware rejecting requests without a valid token."""
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse

    class AuthMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            if request.url.path in exempt:
                return await call_next(request)

            token = ""
            auth_header = request.headers.get("Authorization", "")
            if auth_header.startswith("Bearer "):
                token = auth_header[7:]
            if not token:
                token = request.query_params.get("token", "")

            if not auth.verify(token):
                return JSONResponse(
                    {"error": {"code": "unauthorized", "message": "Invalid or missing token"}},
                    status_code=401
                )
            return await call_next(request)

    return AuthMiddleware
