"""
Audit logging for the bridge. Security-relevant events only; never tokens, codes or secrets.
GET /audit lists recent events (dev use).
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from bridge_server.database import get_db
from bridge_server.models import AuditLog

EVENT_AUTHORIZE = "authorize"
EVENT_UPSTREAM_LOGIN_OK = "upstream_login_ok"
EVENT_UPSTREAM_LOGIN_FAIL = "upstream_login_fail"
EVENT_CODE_ISSUED = "code_issued"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_REJECTED = "token_rejected"
EVENT_TOKEN_REVOKED = "token_revoked"
EVENT_CLIENT_REGISTERED = "client_registered"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    subject: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    detail: str | None = None,
) -> None:
    """Append one audit record."""
    db.add(
        AuditLog(
            event_type=event_type,
            client_id=client_id,
            subject=subject,
            ip=ip,
            outcome=outcome,
            detail=detail[:255] if detail else None,
        )
    )
    db.commit()


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Recent audit events, most recent first, with optional filters."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "subject": r.subject,
            "ip": r.ip,
            "outcome": r.outcome,
            "detail": r.detail,
        }
        for r in rows
    ]
