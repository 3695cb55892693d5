"""
Agent authentication for panel calls
The frontend forwards the auth provider session as a Bearer JWT (HS256)
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import config
from .api_key import is_valid_api_key
from .database import get_db
from .models import TeamMember

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry of an auth provider JWT"""
    if not config.SUPABASE_JWT_SECRET:
        logger.error("❌ SUPABASE_JWT_SECRET not configured")
        raise HTTPException(status_code=500, detail="Authentication not configured")

    try:
        return jwt.decode(
            token,
            config.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"🚫 Invalid JWT: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e


async def get_optional_agent(
    authorization: Optional[str] = Header(None), db: Session = Depends(get_db)
) -> Optional[TeamMember]:
    """
    Resolve the team member behind an optional Bearer token.
    Returns None when no token is sent (API/automation callers).
    """
    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    claims = decode_access_token(token)
    auth_user_id = claims.get("sub")
    if not auth_user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")

    member = db.query(TeamMember).filter(TeamMember.auth_user_id == auth_user_id).first()
    if not member:
        logger.warning(f"⚠️ No team member for auth user {auth_user_id}")
        raise HTTPException(status_code=403, detail="User is not a team member")

    return member


async def get_panel_caller(
    agent: Optional[TeamMember] = Depends(get_optional_agent),
    x_api_key: Optional[str] = Header(None),
) -> dict:
    """
    Panel endpoints accept either a signed-in agent or a trusted automation (x-api-key).

    Returns:
        {"agent": TeamMember | None, "trusted": bool}
    """
    if agent:
        return {"agent": agent, "trusted": False}

    if is_valid_api_key(x_api_key):
        return {"agent": None, "trusted": True}

    raise HTTPException(status_code=401, detail="Not authenticated")


def resolve_tenant_id(caller: dict, requested_user_id: Optional[str]) -> str:
    """Agents act on their own account; automations must name the account"""
    agent = caller.get("agent")
    if agent:
        if requested_user_id and requested_user_id != agent.user_id:
            logger.warning(f"🚫 Agent {agent.id} tried to act on account {requested_user_id}")
            raise HTTPException(status_code=403, detail="Access denied")
        return agent.user_id

    if not requested_user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    return requested_user_id
