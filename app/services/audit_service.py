import uuid, json
from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog

def log_audit(db: Session, actor: str, action: str, entity_type: str, entity_id: str, details: dict | None = None):
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details or {}, ensure_ascii=False, default=str),
    ))
