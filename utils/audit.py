import json
import logging

from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog

log = logging.getLogger(__name__)


def log_event(action: str, entity=None, entity_id=None, metadata=None, commit=True):
    # commit=False: the row joins the caller's transaction and commits with it
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    if commit:
        db.session.commit()
    log.debug(f"audit {action} {entity}:{entity_id}")
