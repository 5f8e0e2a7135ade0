"""
Security self-service endpoints: audit events, sessions and risk reports for the
calling account.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from brandlink.models.security_models import SecurityEventType, UserType
from brandlink.routes.auth import get_current_principal
from brandlink.services.security_service import SecurityService
from brandlink.utils.logging_utils import get_client_ip
from brandlink.utils.rate_limit import api_rate_limit

router = APIRouter(prefix="/security", tags=["Security"], dependencies=[Depends(api_rate_limit)])


async def get_security_service():
    return SecurityService()


@router.get("/events")
async def list_events(
    limit: int = Query(50, ge=1, le=200),
    event_type: Optional[List[SecurityEventType]] = Query(None),
    days: Optional[int] = Query(None, ge=1, le=90),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: SecurityService = Depends(get_security_service),
):
    since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
    events = await service.get_user_security_events(principal["id"], limit=limit, event_types=event_type, since=since)
    return {"events": events, "count": len(events)}


@router.get("/sessions")
async def list_sessions(
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: SecurityService = Depends(get_security_service),
):
    sessions = await service.get_user_active_sessions(principal["id"])
    for session in sessions:
        session["is_current"] = session.get("session_id") == principal["session_id"]
    return {"sessions": sessions, "count": len(sessions)}


@router.delete("/sessions/{session_id}")
async def revoke_session(
    session_id: str,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: SecurityService = Depends(get_security_service),
):
    """Revoke one of the caller's own sessions."""
    session = await service.get_session(session_id)
    if not session or session.get("user_id") != principal["id"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    await service.revoke_session(session_id, reason="user_revoked")
    return {"success": True, "session_id": session_id}


@router.get("/audit-report")
async def audit_report(
    days: int = Query(30, ge=1, le=90),
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: SecurityService = Depends(get_security_service),
):
    return await service.get_security_audit_report(principal["id"], days=days)


@router.post("/suspicious-check")
async def suspicious_check(
    request: Request,
    principal: Dict[str, Any] = Depends(get_current_principal),
    service: SecurityService = Depends(get_security_service),
):
    return await service.detect_suspicious_activity(
        principal["id"], get_client_ip(request), UserType(principal["principal_type"])
    )
