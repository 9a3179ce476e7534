"""
Client relationship data: clients and company settings.

Every query is filtered by the caller's user_id.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, update, or_, func

from contractorai.core.database import get_db_session, clients, profiles
from contractorai.core.errors import NotFoundError
from contractorai.core.serialization import new_id, row_to_dict


CLIENT_FIELDS = ("name", "email", "phone", "company", "address", "city", "state", "zip", "notes", "status")


class ClientService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def list_clients(self, user_id: str, status: Optional[str] = None, search_term: Optional[str] = None) -> List[Dict[str, Any]]:
        query = select(clients).where(clients.c.user_id == user_id)
        if status and status != "all":
            query = query.where(clients.c.status == status)
        if search_term:
            query = query.where(
                or_(
                    clients.c.name.icontains(search_term, autoescape=True),
                    clients.c.email.icontains(search_term, autoescape=True),
                    clients.c.company.icontains(search_term, autoescape=True),
                )
            )
        with self._session_factory() as session:
            rows = session.execute(query.order_by(clients.c.created_at.desc())).fetchall()
        return [row_to_dict(row) for row in rows]

    def get_client(self, user_id: str, client_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.execute(
                select(clients).where(clients.c.user_id == user_id).where(clients.c.id == client_id)
            ).first()
        return row_to_dict(row) if row else None

    def find_client_by_name(self, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Case-insensitive exact match first, then partial match."""
        base = select(clients).where(clients.c.user_id == user_id)
        with self._session_factory() as session:
            row = session.execute(
                base.where(func.lower(clients.c.name) == name.strip().lower()).limit(1)
            ).first()
            if row is None:
                row = session.execute(
                    base.where(clients.c.name.icontains(name.strip(), autoescape=True))
                    .order_by(clients.c.created_at.desc())
                    .limit(1)
                ).first()
        return row_to_dict(row) if row else None

    def add_client(self, user_id: str, **fields) -> Dict[str, Any]:
        values = {key: fields.get(key) for key in CLIENT_FIELDS if fields.get(key) is not None}
        values.setdefault("status", "prospect")
        client_id = new_id()
        with self._session_factory() as session:
            session.execute(insert(clients).values(id=client_id, user_id=user_id, **values))
        return self.get_client(user_id, client_id)

    def update_client(self, user_id: str, client_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        values = {key: value for key, value in updates.items() if key in CLIENT_FIELDS}
        with self._session_factory() as session:
            result = session.execute(
                update(clients)
                .where(clients.c.user_id == user_id)
                .where(clients.c.id == client_id)
                .values(updated_at=func.now(), **values)
            )
            if result.rowcount == 0:
                raise NotFoundError("Client not found")
        return self.get_client(user_id, client_id)


class CompanyService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def get_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.execute(select(profiles).where(profiles.c.user_id == user_id)).first()
        return row_to_dict(row) if row else None
