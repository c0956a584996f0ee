import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session


log = structlog.get_logger(__name__)


def next_sequence_code(db: Session, column, prefix: str, start: int) -> str:
    """Next human readable code, e.g. WS-1000, WS-1001 ..."""
    # Longest first so WS-10000 sorts above WS-9999
    code = (
        db.query(column)
        .filter(column.like(f"{prefix}%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
        .scalar()
    )
    highest = start - 1
    if code is not None and code[len(prefix):].isdigit():
        highest = max(highest, int(code[len(prefix):]))
    return f"{prefix}{highest + 1}"


def commit_with_code(db: Session, obj, attr: str, column, prefix: str, start: int, attempts: int = 2):
    """Give ``obj`` the next code and commit it.

    A concurrent insert can take the same code first; the unique index then
    rejects ours and we try again with a fresh number. The last
    IntegrityError is re-raised.
    """
    for attempt in range(1, attempts + 1):
        setattr(obj, attr, next_sequence_code(db, column, prefix, start))
        db.add(obj)
        try:
            db.commit()
            return obj
        except IntegrityError:
            db.rollback()
            log.warning("sequence_code_taken", code=getattr(obj, attr), attempt=attempt)
            if attempt == attempts:
                raise
