"""
Best-effort runner for secondary writes (activity log, notifications).

The primary write has already been committed when these run; a failure here
is logged and rolled back but never reaches the caller.
"""
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.orm import Session


log = structlog.get_logger(__name__)


def best_effort(db: Session, name: str, fn: Callable[..., Any], *args, **kwargs) -> Optional[Any]:
    try:
        result = fn(db, *args, **kwargs)
        db.commit()
        return result
    except Exception as e:
        db.rollback()
        log.warning("side_effect_failed", side_effect=name, error=str(e))
        return None
