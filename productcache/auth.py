"""Scoped bearer tokens for remote access to the cache tools.

Two pre-shared tokens are supported. The operator token may read the cache
and change it (write products, clear, reset metrics, bulk fill, snapshot);
the optional viewer token may only read. Tools that change the cache call
``require_scope(WRITE_SCOPE)`` before doing anything.

Over stdio there is no access token at all and every tool is allowed.
"""

import hmac

from fastmcp.server.auth import AccessToken, TokenVerifier
from fastmcp.server.dependencies import get_access_token

_MIN_TOKEN_LENGTH = 32

READ_SCOPE = "cache:read"
WRITE_SCOPE = "cache:write"

OPERATOR_CLIENT = "operator"
VIEWER_CLIENT = "viewer"


class ScopeError(Exception):
    """The caller's token does not grant the scope a tool needs."""

    def __init__(self, scope: str, client_id: str) -> None:
        self.scope = scope
        self.client_id = client_id
        super().__init__(f"Token for {client_id} lacks scope {scope}")


def _check_token_length(name: str, token: str | None) -> None:
    if not token or len(token) < _MIN_TOKEN_LENGTH:
        raise ValueError(
            f"{name} must be at least {_MIN_TOKEN_LENGTH} characters, "
            f"got {len(token) if token else 0}"
        )


class BearerTokenVerifier(TokenVerifier):
    """Map pre-shared bearer tokens to cache scopes.

    Args:
        token: Operator token, granted read and write scopes (>= 32 characters).
        read_only_token: Optional viewer token, granted the read scope only.

    Raises:
        ValueError: If a token is shorter than 32 characters, or both tokens
            are the same.
    """

    def __init__(self, token: str, read_only_token: str | None = None) -> None:
        _check_token_length("MCP auth token", token)
        if read_only_token is not None:
            _check_token_length("MCP read-only token", read_only_token)
            if hmac.compare_digest(token, read_only_token):
                raise ValueError("MCP read-only token must differ from the auth token")
        super().__init__(required_scopes=[READ_SCOPE])
        self._tokens: list[tuple[str, str, list[str]]] = [
            (token, OPERATOR_CLIENT, [READ_SCOPE, WRITE_SCOPE]),
        ]
        if read_only_token is not None:
            self._tokens.append((read_only_token, VIEWER_CLIENT, [READ_SCOPE]))

    async def verify_token(self, token: str) -> AccessToken | None:
        """Return an ``AccessToken`` with the matching client's scopes, else ``None``."""
        for expected, client_id, scopes in self._tokens:
            if hmac.compare_digest(token, expected):
                return AccessToken(token=token, client_id=client_id, scopes=list(scopes))
        return None


def require_scope(scope: str) -> None:
    """Raise ``ScopeError`` unless the current caller may use *scope*.

    Unauthenticated calls (stdio transport, or HTTP without auth configured)
    carry no access token and are allowed.
    """
    access_token = get_access_token()
    if access_token is None:
        return
    if scope not in access_token.scopes:
        raise ScopeError(scope, access_token.client_id)
