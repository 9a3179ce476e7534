"""
Project management data: projects (with tasks), calendar events, employees.

Every query is filtered by the caller's user_id.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, update

from contractorai.core.database import get_db_session, projects, tasks, calendar_events, employees
from contractorai.core.errors import NotFoundError
from contractorai.core.serialization import new_id, row_to_dict


class ProjectService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def _tasks_by_project(self, session, user_id: str, project_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        grouped: Dict[str, List[Dict[str, Any]]] = {project_id: [] for project_id in project_ids}
        if not project_ids:
            return grouped
        rows = session.execute(
            select(tasks)
            .where(tasks.c.user_id == user_id)
            .where(tasks.c.project_id.in_(project_ids))
            .order_by(tasks.c.created_at)
        ).fetchall()
        for row in rows:
            grouped[row.project_id].append(row_to_dict(row))
        return grouped

    def list_projects(
        self,
        user_id: str,
        status: Optional[str] = None,
        client_id: Optional[str] = None,
        include_tasks: bool = False,
    ) -> List[Dict[str, Any]]:
        query = select(projects).where(projects.c.user_id == user_id)
        if status and status != "all":
            query = query.where(projects.c.status == status)
        if client_id:
            query = query.where(projects.c.client_id == client_id)
        with self._session_factory() as session:
            rows = session.execute(query.order_by(projects.c.created_at.desc())).fetchall()
            result = [row_to_dict(row) for row in rows]
            if include_tasks:
                grouped = self._tasks_by_project(session, user_id, [item["id"] for item in result])
                for item in result:
                    item["tasks"] = grouped[item["id"]]
        return result

    def get_project(self, user_id: str, project_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.execute(
                select(projects).where(projects.c.user_id == user_id).where(projects.c.id == project_id)
            ).first()
            if row is None:
                return None
            project = row_to_dict(row)
            project["tasks"] = self._tasks_by_project(session, user_id, [project_id])[project_id]
        return project

    def find_project_by_name(self, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.execute(
                select(projects.c.id)
                .where(projects.c.user_id == user_id)
                .where(projects.c.name.icontains(name.strip(), autoescape=True))
                .order_by(projects.c.created_at.desc())
                .limit(1)
            ).first()
        return self.get_project(user_id, row.id) if row else None

    def add_project(
        self,
        user_id: str,
        name: str,
        client_id: Optional[str] = None,
        client_name: Optional[str] = None,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        budget: Optional[float] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        project_id = new_id()
        with self._session_factory() as session:
            session.execute(
                insert(projects).values(
                    id=project_id,
                    user_id=user_id,
                    name=name,
                    client_id=client_id,
                    client_name=client_name,
                    description=description,
                    start_date=start_date,
                    end_date=end_date,
                    budget=budget,
                    status=status or "active",
                )
            )
        return self.get_project(user_id, project_id)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class CalendarService:
    EVENT_FIELDS = ("title", "description", "start_date", "end_date", "location", "all_day", "event_type")

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def get_event(self, user_id: str, event_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = session.execute(
                select(calendar_events)
                .where(calendar_events.c.user_id == user_id)
                .where(calendar_events.c.id == event_id)
            ).first()
        return row_to_dict(row) if row else None

    def list_events(
        self,
        user_id: str,
        start: date,
        end: date,
        client_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Events starting on any day from `start` through `end` inclusive."""
        query = (
            select(calendar_events)
            .where(calendar_events.c.user_id == user_id)
            .where(calendar_events.c.start_date >= _day_start(start))
            .where(calendar_events.c.start_date < _day_start(end + timedelta(days=1)))
        )
        if client_id:
            query = query.where(calendar_events.c.client_id == client_id)
        with self._session_factory() as session:
            rows = session.execute(query.order_by(calendar_events.c.start_date)).fetchall()
        return [row_to_dict(row) for row in rows]

    def create_event(
        self,
        user_id: str,
        title: str,
        start: datetime,
        end: Optional[datetime] = None,
        description: Optional[str] = None,
        location: Optional[str] = None,
        all_day: bool = False,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        event_id = new_id()
        with self._session_factory() as session:
            session.execute(
                insert(calendar_events).values(
                    id=event_id,
                    user_id=user_id,
                    title=title,
                    start_date=start,
                    end_date=end or start,
                    description=description,
                    location=location,
                    all_day=all_day,
                    client_id=client_id,
                    project_id=project_id,
                )
            )
        return self.get_event(user_id, event_id)

    def update_event(self, user_id: str, event_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        values = {key: value for key, value in updates.items() if key in self.EVENT_FIELDS}
        with self._session_factory() as session:
            result = session.execute(
                update(calendar_events)
                .where(calendar_events.c.user_id == user_id)
                .where(calendar_events.c.id == event_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError("Event not found")
        return self.get_event(user_id, event_id)


class EmployeeService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def list_employees(self, user_id: str, status: Optional[str] = "active") -> List[Dict[str, Any]]:
        query = select(employees).where(employees.c.user_id == user_id)
        if status and status != "all":
            query = query.where(employees.c.status == status)
        with self._session_factory() as session:
            rows = session.execute(query.order_by(employees.c.name)).fetchall()
        return [row_to_dict(row) for row in rows]
