"""Entitlement store upserts: keyed on (user_id, platform) and idempotent."""
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, func

from contractorai.core.database import get_db_session, user_subscriptions
from contractorai.features.subscriptions.models import EntitlementRecord, Platform
from contractorai.features.subscriptions.store import EntitlementStore


def _row_count():
    with get_db_session() as session:
        return session.execute(select(func.count()).select_from(user_subscriptions)).scalar()


def test_upsert_inserts_then_updates_same_key():
    store = EntitlementStore()
    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.WEB, is_active=True, product_id="monthly"))
    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.WEB, is_active=False, product_id="monthly"))

    assert _row_count() == 1
    assert store.get("u1", Platform.WEB).is_active is False


def test_identical_upsert_leaves_row_untouched():
    store = EntitlementStore()
    expires = datetime.now(timezone.utc) + timedelta(days=30)
    record = EntitlementRecord(
        user_id="u1",
        platform=Platform.NATIVE,
        is_active=True,
        product_id="pro_yearly",
        entitlement_id="ContractorAI Pro",
        expires_at=expires,
        will_renew=True,
    )

    store.upsert(record)
    before = store.get("u1", Platform.NATIVE)
    store.upsert(record)
    after = store.get("u1", Platform.NATIVE)

    assert before == after
    assert after.updated_at == before.updated_at
    assert after.expires_at == expires


def test_records_are_per_platform():
    store = EntitlementStore()
    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.WEB, is_active=True))
    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.NATIVE, is_active=False))
    store.upsert(EntitlementRecord(user_id="u2", platform=Platform.WEB, is_active=True))

    records = store.list_by_user("u1")
    assert {record.platform for record in records} == {Platform.WEB, Platform.NATIVE}
    assert _row_count() == 3


def test_get_active_ignores_inactive_records():
    store = EntitlementStore()
    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.NATIVE, is_active=False))
    assert store.get_active("u1") is None

    store.upsert(EntitlementRecord(user_id="u1", platform=Platform.WEB, is_active=True))
    assert store.get_active("u1").platform is Platform.WEB


def test_linked_from_round_trips():
    store = EntitlementStore()
    store.upsert(
        EntitlementRecord(
            user_id="u1",
            platform=Platform.NATIVE,
            is_active=True,
            linked_from_platform=Platform.WEB,
        )
    )
    assert store.get("u1", Platform.NATIVE).linked_from_platform is Platform.WEB
