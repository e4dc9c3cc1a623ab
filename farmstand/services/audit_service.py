import logging
from datetime import datetime, timezone
from typing import Any

from farmstand.core.observability import engine_logger, get_request_id, log_json


def log_audit_event(
    *,
    actor_user_id: str | None,
    action: str,
    target_type: str,
    target_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Emit one JSON line describing an engine side effect.

    Events go to the log stream only; nothing is persisted, so reversals
    that delete rows leave no database trace.
    """
    event = {
        "event": action,
        "request_id": get_request_id(),
        "actor_user_id": actor_user_id,
        "target_type": target_type,
        "target_id": target_id,
        "metadata": metadata_json or {},
        "logged_at": datetime.now(timezone.utc).isoformat(),
    }
    log_json(engine_logger, logging.INFO, event)
    return event
