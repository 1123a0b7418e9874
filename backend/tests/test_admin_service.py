import pytest
from pydantic import ValidationError

from flaggate.schemas.core import FeatureFlagCreate, FeatureFlagUpdate
from flaggate.services.feature_flags import (
    FeatureFlagAdminService,
    FeatureFlagConflictError,
    FeatureFlagNotFoundError,
    FeatureFlagValidationError,
)


async def _audit(db, flag_key, **kwargs):
    return await FeatureFlagAdminService.list_audit(db, flag_key, **kwargs)


async def test_create_writes_audit(db):
    flag = await FeatureFlagAdminService.create_flag(
        db,
        FeatureFlagCreate(flag_key="stocks_widget", description="行情小组件", whitelist=["a", " a ", "b"]),
        actor_id="admin-1",
        reason="初始化",
        trace_id="req-1",
    )
    assert flag.enabled is False
    assert flag.rollout_percentage == 0
    assert flag.whitelist == ["a", "b"]

    rows = await _audit(db, "stocks_widget")
    assert len(rows) == 1
    assert rows[0].action == "create"
    assert rows[0].actor_type == "admin"
    assert rows[0].before_state is None
    assert rows[0].after_state["flag_key"] == "stocks_widget"
    assert rows[0].reason == "初始化"
    assert rows[0].trace_id == "req-1"


async def test_create_duplicate_key(db, make_flag):
    await make_flag("dup")
    with pytest.raises(FeatureFlagConflictError):
        await make_flag("dup")


async def test_deleted_key_is_not_reused(db, make_flag):
    await make_flag("gone")
    await FeatureFlagAdminService.delete_flag(db, "gone")
    with pytest.raises(FeatureFlagConflictError):
        await make_flag("gone")


def test_create_rejects_bad_key():
    with pytest.raises(ValidationError):
        FeatureFlagCreate(flag_key="Has Spaces")


async def test_partial_update_keeps_other_fields(db, make_flag):
    await make_flag("partial", description="说明", whitelist=["42"], rollout_percentage=10)
    updated = await FeatureFlagAdminService.update_flag(
        db, "partial", FeatureFlagUpdate(enabled=True), actor_id="admin-1", reason="开放"
    )
    assert updated.enabled is True
    assert updated.description == "说明"
    assert updated.whitelist == ["42"]
    assert updated.rollout_percentage == 10

    rows = await _audit(db, "partial")
    assert [r.action for r in rows] == ["update", "create"]
    latest = rows[0]
    assert latest.before_state["enabled"] is False
    assert latest.after_state["enabled"] is True
    assert latest.after_state["rollout_percentage"] == 10
    assert latest.reason == "开放"


async def test_explicit_null_is_ignored(db, make_flag):
    await make_flag("nulls", description="保留")
    await FeatureFlagAdminService.update_flag(db, "nulls", FeatureFlagUpdate(description=None, enabled=True))
    flag = await FeatureFlagAdminService.get_flag(db, "nulls")
    assert flag.description == "保留"
    assert flag.enabled is True


async def test_noop_update_writes_nothing(db, make_flag):
    flag = await make_flag("quiet", enabled=True, rollout_percentage=25, whitelist=["x"])
    updated_at = flag.updated_at

    await FeatureFlagAdminService.update_flag(
        db,
        "quiet",
        FeatureFlagUpdate(enabled=True, rollout_percentage=25, whitelist=["x"]),
        actor_id="admin-1",
    )
    await FeatureFlagAdminService.update_flag(db, "quiet", FeatureFlagUpdate(), actor_id="admin-1")

    assert len(await _audit(db, "quiet")) == 1
    current = await FeatureFlagAdminService.get_flag(db, "quiet")
    assert current.updated_at == updated_at


async def test_update_bumps_updated_at(db, make_flag):
    flag = await make_flag("bump")
    created = flag.updated_at
    updated = await FeatureFlagAdminService.update_flag(db, "bump", FeatureFlagUpdate(rollout_percentage=5))
    assert updated.updated_at >= created
    rows = await _audit(db, "bump")
    assert rows[0].timestamp is not None


def test_update_schema_rejects_out_of_range():
    with pytest.raises(ValidationError):
        FeatureFlagUpdate(rollout_percentage=150)
    with pytest.raises(ValidationError):
        FeatureFlagUpdate(rollout_percentage=-1)


async def test_out_of_range_update_leaves_flag_untouched(db, make_flag):
    await make_flag("guarded", rollout_percentage=20)
    changes = FeatureFlagUpdate.model_construct(rollout_percentage=150, enabled=True)

    with pytest.raises(FeatureFlagValidationError):
        await FeatureFlagAdminService.update_flag(db, "guarded", changes, actor_id="admin-1")

    flag = await FeatureFlagAdminService.get_flag(db, "guarded")
    assert flag.rollout_percentage == 20
    assert flag.enabled is False
    assert len(await _audit(db, "guarded")) == 1


async def test_update_unknown_flag(db):
    with pytest.raises(FeatureFlagNotFoundError) as exc_info:
        await FeatureFlagAdminService.update_flag(db, "missing", FeatureFlagUpdate(enabled=True))
    assert exc_info.value.flag_key == "missing"


async def test_system_actor_without_actor_id(db, make_flag):
    await make_flag("seeded")
    await FeatureFlagAdminService.update_flag(db, "seeded", FeatureFlagUpdate(enabled=True))
    rows = await _audit(db, "seeded")
    assert {r.actor_type for r in rows} == {"system"}
    assert all(r.actor_id is None for r in rows)


async def test_soft_delete(db, make_flag):
    await make_flag("legacy", enabled=True, rollout_percentage=100)
    deleted = await FeatureFlagAdminService.delete_flag(db, "legacy", actor_id="admin-2", reason="下线")

    assert deleted.is_deleted is True
    assert deleted.enabled is False
    assert deleted.deleted_at is not None
    assert await FeatureFlagAdminService.get_flag(db, "legacy") is None

    visible = await FeatureFlagAdminService.list_flags(db)
    assert "legacy" not in [f.flag_key for f in visible]
    everything = await FeatureFlagAdminService.list_flags(db, include_deleted=True)
    assert "legacy" in [f.flag_key for f in everything]

    rows = await _audit(db, "legacy")
    assert rows[0].action == "delete"
    assert rows[0].before_state["enabled"] is True
    assert rows[0].after_state["is_deleted"] is True

    with pytest.raises(FeatureFlagNotFoundError):
        await FeatureFlagAdminService.delete_flag(db, "legacy")


async def test_audit_filter_by_actor(db, make_flag):
    await make_flag("shared")
    await FeatureFlagAdminService.update_flag(db, "shared", FeatureFlagUpdate(enabled=True), actor_id="alice")
    await FeatureFlagAdminService.update_flag(db, "shared", FeatureFlagUpdate(rollout_percentage=30), actor_id="bob")

    alice = await _audit(db, "shared", actor_id="alice")
    assert len(alice) == 1
    assert alice[0].after_state["enabled"] is True
    assert len(await _audit(db, "shared", limit=2)) == 2
