from __future__ import annotations

import pytest

from assetpro.ledger import (
    APPLIED,
    ORPHANED,
    SKIPPED_REFERENCE_NOT_FOUND,
    Ledger,
    LedgerValidationError,
    ReferenceNotFound,
)
from assetpro.storage import PersistenceError


def _open(ledger, wo_id="SPK-1", tech="TECH-01", asset="AST-001"):
    return ledger.create_work_order(
        {"id": wo_id, "asset_id": asset, "technician_id": tech, "title": "Fan noise", "priority": "High"}
    )


def test_fan_repair_scenario(stocked_ledger) -> None:
    led = stocked_ledger
    out = _open(led)
    assert out.ok
    assert led.get_asset("AST-001")["status"] == "Under Repair"
    assert led.get_technician("TECH-01")["active_tasks"] == 1

    done = led.update_work_order_status("SPK-1", "Completed", note="Fixed fan")
    assert done.ok
    assert led.get_asset("AST-001")["status"] == "Operational"
    assert led.get_technician("TECH-01")["active_tasks"] == 0
    assert led.get_work_order("SPK-1")["completed_at"]
    assert led.get_work_order("SPK-1")["completion_note"] == "Fixed fan"


def test_create_forces_open_and_clears_completion(stocked_ledger) -> None:
    out = stocked_ledger.create_work_order(
        {
            "id": "SPK-9",
            "asset_id": "AST-001",
            "technician_id": "TECH-01",
            "title": "Inspect",
            "status": "Completed",
            "completed_at": "2024-01-01T00:00:00.000Z",
        }
    )
    assert out.item["status"] == "Open"
    assert out.item["completed_at"] is None
    assert out.item["created_at"]


def test_create_generates_spk_id(stocked_ledger) -> None:
    first = stocked_ledger.create_work_order({"asset_id": "AST-001", "technician_id": "TECH-01", "title": "A"})
    second = stocked_ledger.create_work_order({"asset_id": "AST-001", "technician_id": "TECH-01", "title": "B"})
    assert first.item["id"].startswith("SPK-")
    assert first.item["id"].endswith("-001")
    assert second.item["id"].endswith("-002")


def test_completion_is_idempotent(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    _open(led, wo_id="SPK-2")
    assert led.get_technician("TECH-01")["active_tasks"] == 2

    first = led.update_work_order_status("SPK-1", "Completed", note="done")
    stamp = first.item["completed_at"]
    second = led.update_work_order_status("SPK-1", "Completed", note="done again")
    assert led.get_technician("TECH-01")["active_tasks"] == 1
    assert second.item["completed_at"] == stamp
    assert second.effects == []


def test_completion_requires_note(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    with pytest.raises(LedgerValidationError):
        led.update_work_order_status("SPK-1", "Completed", note="   ")
    wo = led.get_work_order("SPK-1")
    assert wo["status"] == "Open"
    assert wo["completed_at"] is None
    assert led.get_technician("TECH-01")["active_tasks"] == 1
    assert led.get_asset("AST-001")["status"] == "Under Repair"


def test_completion_accepts_previously_stored_note(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    led.update_work_order_status("SPK-1", "In Progress", note="waiting for part")
    out = led.update_work_order_status("SPK-1", "Completed")
    assert out.item["status"] == "Completed"
    assert out.item["completion_note"] == "waiting for part"


def test_completed_is_terminal(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    led.update_work_order_status("SPK-1", "Completed", note="ok")
    with pytest.raises(LedgerValidationError):
        led.update_work_order_status("SPK-1", "Open")
    assert led.get_work_order("SPK-1")["status"] == "Completed"


def test_handover_moves_workload(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    led.update_asset_status("AST-001", "Broken")
    out = led.update_work_order({"id": "SPK-1", "technician_id": "TECH-02", "title": "Fan noise (loud)"})
    assert out.ok
    assert led.get_technician("TECH-01")["active_tasks"] == 0
    assert led.get_technician("TECH-02")["active_tasks"] == 1
    assert led.get_asset("AST-001")["status"] == "Broken"
    assert led.get_work_order("SPK-1")["title"] == "Fan noise (loud)"


def test_update_does_not_touch_status(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    led.update_work_order({"id": "SPK-1", "status": "Completed", "completed_at": "2020-01-01"})
    wo = led.get_work_order("SPK-1")
    assert wo["status"] == "Open"
    assert wo["completed_at"] is None


def test_no_handover_after_completion(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    led.update_work_order_status("SPK-1", "Completed", note="ok")
    out = led.update_work_order({"id": "SPK-1", "technician_id": "TECH-02"})
    assert out.applied is False
    assert out.reason == "completed"
    assert led.get_work_order("SPK-1")["technician_id"] == "TECH-01"
    assert led.get_technician("TECH-02")["active_tasks"] == 0


def test_reassign_same_technician_is_noop(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    out = led.reassign_work_order("SPK-1", "TECH-01")
    assert out.applied is False
    assert out.reason == "unchanged"
    assert led.get_technician("TECH-01")["active_tasks"] == 1


def test_active_tasks_floor_at_zero(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    # another writer reset the counter
    led.store.update_technician({**led.get_technician("TECH-01"), "active_tasks": 0})
    led.load()
    led.update_work_order_status("SPK-1", "Completed", note="ok")
    assert led.get_technician("TECH-01")["active_tasks"] == 0


def test_missing_references_are_reported(stocked_ledger) -> None:
    out = stocked_ledger.create_work_order(
        {"id": "SPK-X", "asset_id": "AST-404", "technician_id": "TECH-404", "title": "Ghost"}
    )
    assert out.applied is True
    assert out.ok is False
    assert stocked_ledger.get_work_order("SPK-X") is not None
    outcomes = {(e.entity, e.outcome) for e in out.effects}
    assert ("technician", SKIPPED_REFERENCE_NOT_FOUND) in outcomes
    assert ("asset", SKIPPED_REFERENCE_NOT_FOUND) in outcomes


def test_strict_references_reject_before_write(adapter) -> None:
    led = Ledger(adapter, strict_references=True, seed_demo=False)
    led.load()
    led.register_technician({"id": "TECH-01", "name": "Budi"})
    with pytest.raises(ReferenceNotFound):
        led.create_work_order({"id": "SPK-1", "asset_id": "AST-404", "technician_id": "TECH-01", "title": "x"})
    assert led.list_work_orders() == []
    assert led.get_technician("TECH-01")["active_tasks"] == 0
    assert adapter.fetch_work_orders() == []


def test_unknown_work_order_raises_not_found(stocked_ledger) -> None:
    with pytest.raises(ReferenceNotFound, match="not found"):
        stocked_ledger.update_work_order_status("SPK-404", "In Progress")


def test_delete_technician_orphans_open_orders(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    out = led.delete_technician("TECH-01")
    assert [(e.entity_id, e.outcome) for e in out.effects] == [("SPK-1", ORPHANED)]
    assert led.get_work_order("SPK-1")["technician_id"] == "TECH-01"

    done = led.update_work_order_status("SPK-1", "Completed", note="finished by someone else")
    assert done.item["status"] == "Completed"
    assert [e.outcome for e in done.effects if e.entity == "technician"] == [SKIPPED_REFERENCE_NOT_FOUND]
    assert [e.outcome for e in done.effects if e.entity == "asset"] == [APPLIED]


def test_delete_asset_keeps_work_orders(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    out = led.delete_asset("AST-001")
    assert out.effects[0].outcome == ORPHANED
    assert led.get_asset("AST-001") is None
    assert led.get_work_order("SPK-1") is not None


def test_reconcile_fixes_drift(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    _open(led, wo_id="SPK-2", tech="TECH-02")
    led.update_work_order_status("SPK-2", "Cancelled")
    assert led.get_technician("TECH-02")["active_tasks"] == 1

    out = led.reconcile()
    assert out.item["drift"] == [{"technician_id": "TECH-02", "recorded": 1, "actual": 0}]
    assert led.get_technician("TECH-02")["active_tasks"] == 0
    assert led.get_technician("TECH-01")["active_tasks"] == 1
    assert led.reconcile().item["drift"] == []


def test_register_asset_defaults(ledger) -> None:
    out = ledger.register_asset({"name": "Forklift"})
    row = out.item
    assert row["id"] == "AST-001"
    assert row["status"] == "Operational"
    assert row["last_maintenance"] == "Never"
    assert row["purchase_date"]
    assert ledger.register_asset({"name": "Generator"}).item["id"] == "AST-002"


def test_completion_stamps_last_maintenance(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    out = led.update_work_order_status("SPK-1", "Completed", note="ok")
    assert led.get_asset("AST-001")["last_maintenance"] == out.item["completed_at"][:10]


def test_register_technician_defaults_and_promote(ledger) -> None:
    tech = ledger.register_technician({"id": "TECH-09", "name": "Andi", "active_tasks": 5}).item
    assert tech["active_tasks"] == 0
    assert tech["rank"] == "Junior Associate"
    assert tech["password"] == "password123"

    ledger.promote_technician("TECH-09", "Lead Specialist")
    assert ledger.get_technician("TECH-09")["rank"] == "Lead Specialist"
    with pytest.raises(LedgerValidationError):
        ledger.promote_technician("TECH-09", "Grandmaster")


def test_authenticate_technician(stocked_ledger) -> None:
    assert stocked_ledger.authenticate_technician("TECH-01", "password123")["id"] == "TECH-01"
    assert stocked_ledger.authenticate_technician("TECH-01", "wrong") is None
    assert stocked_ledger.authenticate_technician("TECH-404", "password123") is None


def test_catalog_add_remove(ledger) -> None:
    assert "Vehicles" in ledger.categories()
    assert ledger.add_category("  Drones ").item["items"] == sorted(ledger.categories())
    assert "Drones" in ledger.categories()
    ledger.remove_location("Meeting Room 2")
    assert "Meeting Room 2" not in ledger.locations()
    with pytest.raises(ReferenceNotFound):
        ledger.remove_location("Meeting Room 2")
    with pytest.raises(LedgerValidationError):
        ledger.add_category("   ")

    reloaded = Ledger(ledger.store, seed_demo=False)
    reloaded.load()
    assert "Drones" in reloaded.categories()


def test_search_filters(stocked_ledger) -> None:
    led = stocked_ledger
    _open(led)
    _open(led, wo_id="SPK-2", tech="TECH-02")
    assert [w["id"] for w in led.list_work_orders(technician_id="TECH-02")] == ["SPK-2"]
    assert [a["id"] for a in led.list_assets(q="fan")] == ["AST-001"]
    assert led.list_technicians(q="hvac")[0]["id"] == "TECH-02"


def test_reassign_hands_over_without_reentering_update(stocked_ledger, monkeypatch) -> None:
    led = stocked_ledger
    _open(led)

    def _no_reentry(payload):
        raise AssertionError("reassign released the lock before updating")

    monkeypatch.setattr(led, "update_work_order", _no_reentry)
    out = led.reassign_work_order("SPK-1", "TECH-02")
    assert out.ok
    assert led.get_work_order("SPK-1")["technician_id"] == "TECH-02"
    assert led.get_technician("TECH-01")["active_tasks"] == 0
    assert led.get_technician("TECH-02")["active_tasks"] == 1
    assert led.reassign_work_order("SPK-1", "TECH-02").reason == "unchanged"


def test_catalog_write_failure_is_reported(ledger, monkeypatch) -> None:
    def _disk_full(key, value):
        raise PersistenceError("disk full")

    monkeypatch.setattr(ledger.store, "set_setting", _disk_full)
    out = ledger.add_location("Warehouse")
    assert out.applied is True
    assert out.ok is False
    assert "disk full" in out.persist_errors[0]
    assert "Warehouse" in ledger.locations()

    again = ledger.add_location("Warehouse")
    assert again.applied is False
    assert again.reason == "exists"
