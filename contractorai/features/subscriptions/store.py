"""
Entitlement store backed by the user_subscriptions table.

Upserts are keyed on (user_id, platform). A write whose fields already
match the stored row does nothing, so repeated reconciliation passes leave
the table byte-identical.
"""

from datetime import datetime, timezone
from typing import Callable, ContextManager, List, Optional
import logging

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contractorai.core.database import get_db_session, user_subscriptions
from contractorai.core.serialization import as_utc
from contractorai.features.subscriptions.models import EntitlementRecord, Platform


logger = logging.getLogger("contractorai")

SessionFactory = Callable[[], ContextManager[Session]]


def _row_to_record(row) -> EntitlementRecord:
    return EntitlementRecord(
        user_id=row.user_id,
        platform=Platform(row.platform),
        is_active=bool(row.is_active),
        product_id=row.product_id,
        entitlement_id=row.entitlement_id,
        expires_at=as_utc(row.expires_at),
        will_renew=bool(row.will_renew),
        linked_from_platform=Platform(row.linked_from_platform) if row.linked_from_platform else None,
        app_user_id=row.app_user_id,
        updated_at=as_utc(row.updated_at),
    )


class EntitlementStore:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or get_db_session

    def list_by_user(self, user_id: str) -> List[EntitlementRecord]:
        with self._session_factory() as session:
            rows = session.execute(
                select(user_subscriptions)
                .where(user_subscriptions.c.user_id == user_id)
                .order_by(user_subscriptions.c.platform)
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def get(self, user_id: str, platform: Platform) -> Optional[EntitlementRecord]:
        with self._session_factory() as session:
            row = session.execute(
                select(user_subscriptions)
                .where(user_subscriptions.c.user_id == user_id)
                .where(user_subscriptions.c.platform == platform.value)
            ).first()
        return _row_to_record(row) if row else None

    def get_active(self, user_id: str) -> Optional[EntitlementRecord]:
        """Most recently updated active record, if any."""
        with self._session_factory() as session:
            row = session.execute(
                select(user_subscriptions)
                .where(user_subscriptions.c.user_id == user_id)
                .where(user_subscriptions.c.is_active.is_(True))
                .order_by(user_subscriptions.c.updated_at.desc())
                .limit(1)
            ).first()
        return _row_to_record(row) if row else None

    def upsert(self, record: EntitlementRecord) -> EntitlementRecord:
        """Insert or update the (user_id, platform) row; no-op when unchanged."""
        values = record.fields()
        key = (
            (user_subscriptions.c.user_id == record.user_id)
            & (user_subscriptions.c.platform == record.platform.value)
        )

        with self._session_factory() as session:
            existing = session.execute(select(user_subscriptions).where(key)).first()
            if existing is not None:
                current = _row_to_record(existing)
                if current.fields() == values:
                    return current

            now = datetime.now(timezone.utc)
            if existing is None:
                try:
                    session.execute(
                        insert(user_subscriptions).values(
                            user_id=record.user_id,
                            platform=record.platform.value,
                            updated_at=now,
                            **values,
                        )
                    )
                    session.commit()
                except IntegrityError:
                    # Concurrent reconciliation inserted the same key first
                    session.rollback()
                    session.execute(update(user_subscriptions).where(key).values(updated_at=now, **values))
            else:
                session.execute(update(user_subscriptions).where(key).values(updated_at=now, **values))

        logger.info(
            "subscriptions.record_upserted",
            extra={
                "user_id": record.user_id,
                "platform": record.platform.value,
                "status": "active" if record.is_active else "inactive",
            },
        )
        return EntitlementRecord(
            user_id=record.user_id,
            platform=record.platform,
            is_active=record.is_active,
            product_id=record.product_id,
            entitlement_id=record.entitlement_id,
            expires_at=as_utc(record.expires_at),
            will_renew=record.will_renew,
            linked_from_platform=record.linked_from_platform,
            app_user_id=record.app_user_id,
            updated_at=now,
        )
