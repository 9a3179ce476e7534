"""Row helpers shared by the business services."""
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
import uuid


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def row_to_dict(row) -> Dict[str, Any]:
    """Convert a SQLAlchemy Row into a JSON-ready dict (datetimes as UTC ISO strings)."""
    return {key: _jsonable(value) for key, value in row._mapping.items()}
