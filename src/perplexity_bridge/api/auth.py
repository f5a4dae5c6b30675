"""HTTP Basic authentication for the MCP endpoints."""

from __future__ import annotations

import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from perplexity_bridge.api.dependencies import get_settings
from perplexity_bridge.config.settings import Settings
from perplexity_bridge.observability.logger import get_logger

logger = get_logger("auth")

security = HTTPBasic(realm="MCP Server")


def verify_credentials(
    credentials: HTTPBasicCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    """FastAPI dependency: check Basic credentials against MCP_USER / MCP_PASS."""
    user_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), settings.mcp_user.encode("utf-8")
    )
    pass_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"), settings.mcp_pass.encode("utf-8")
    )
    if not (user_ok and pass_ok):
        logger.warning("invalid_credentials", username=credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": 'Basic realm="MCP Server"'},
        )
    return credentials.username
