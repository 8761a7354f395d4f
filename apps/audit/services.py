import logging

from apps.audit.models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(*, actor, action, entity_type, entity_id, payload=None):
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None
    logger.info("%s %s:%s", action, entity_type, entity_id)
    return AuditLog.objects.create(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=payload or {},
    )
