"""Tests for the database layer."""

from datetime import date


def test_insert_and_fetch_medicines(tmp_db):
    saved = tmp_db.insert_medicine("u1", "Aspirin", "100 mg", ["Pzt", "Cum"], ["08:00"], color="#E07B4F")
    assert saved["id"] > 0
    assert saved["days"] == ["Pzt", "Cum"]
    meds = tmp_db.fetch_medicines("u1")
    assert len(meds) == 1
    assert meds[0].name == "Aspirin"
    assert meds[0].days == ("Pzt", "Cum")


def test_fetch_is_scoped_by_user(tmp_db):
    tmp_db.insert_medicine("u1", "Aspirin")
    tmp_db.add_family_member("u1", "Ayşe", "0555")
    assert tmp_db.fetch_medicines("u2") == []
    assert tmp_db.fetch_family_members("u2") == []


def test_family_member_phone(tmp_db):
    tmp_db.add_family_member("u1", "Ayşe", "0555 123")
    tmp_db.add_family_member("u1", "Mehmet")
    members = tmp_db.fetch_family_members("u1")
    assert [(m.name, m.phone) for m in members] == [("Ayşe", "0555 123"), ("Mehmet", None)]


def test_mark_taken_is_idempotent_per_day(tmp_db):
    med = tmp_db.insert_medicine("u1", "Aspirin")
    day = date(2025, 3, 10)
    first = tmp_db.mark_medicine_taken("u1", med["id"], day)
    second = tmp_db.mark_medicine_taken("u1", med["id"], day)
    assert first == second
    assert tmp_db.fetch_taken_ids("u1", day) == [med["id"]]


def test_mark_taken_separate_days(tmp_db):
    med = tmp_db.insert_medicine("u1", "Aspirin")
    tmp_db.mark_medicine_taken("u1", med["id"], date(2025, 3, 10))
    tmp_db.mark_medicine_taken("u1", med["id"], date(2025, 3, 11))
    assert tmp_db.fetch_taken_ids("u1", date(2025, 3, 11)) == [med["id"]]


def test_unmark_taken(tmp_db):
    med = tmp_db.insert_medicine("u1", "Aspirin")
    day = date(2025, 3, 10)
    tmp_db.mark_medicine_taken("u1", med["id"], day)
    assert tmp_db.unmark_medicine_taken("u1", med["id"], day)
    assert tmp_db.fetch_taken_ids("u1", day) == []
    assert not tmp_db.unmark_medicine_taken("u1", med["id"], day)


def test_insert_and_list_plans(tmp_db):
    tmp_db.insert_plan("u1", "Doktor", "2025-03-12", "14:00")
    tmp_db.insert_plan("u1", "Eczane", "2025-03-11", "10:00", note="reçete")
    plans = tmp_db.list_plans("u1")
    assert [p["title"] for p in plans] == ["Eczane", "Doktor"]
    assert plans[0]["note"] == "reçete"


def test_save_reminders_upserts_by_identifier(tmp_db):
    row = {
        "identifier": "med_1_Pzt_0800", "kind": "medicine", "ref_id": 1, "weekday": 2,
        "fire_at": None, "hour": 8, "minute": 0, "title": "t", "body": "b",
    }
    tmp_db.save_reminders([row])
    tmp_db.save_reminders([{**row, "body": "updated"}])
    reminders = tmp_db.list_reminders("medicine")
    assert len(reminders) == 1
    assert reminders[0]["body"] == "updated"


def test_delete_reminders(tmp_db):
    row = {
        "identifier": "plan_3", "kind": "plan", "ref_id": 3, "weekday": None,
        "fire_at": None, "hour": 9, "minute": 45, "title": "t", "body": "b",
    }
    tmp_db.save_reminders([row])
    assert tmp_db.delete_reminders("plan", 3) == 1
    assert tmp_db.list_reminders() == []
