"""Tests for medicine and plan reminder scheduling."""

from datetime import datetime

from ebaston.notifications import ReminderScheduler

NOW = datetime(2025, 3, 10, 12, 0)


def _scheduler(db):
    return ReminderScheduler(db, now=lambda: NOW)


def test_medicine_reminders_one_per_day_and_time(tmp_db):
    med = tmp_db.insert_medicine("u1", "Aspirin", days=["Pzt", "Paz"], times=["08:00", "20:30"])
    reminders = _scheduler(tmp_db).medicine_reminders(med)
    assert len(reminders) == 4
    first = reminders[0]
    assert first["identifier"] == f"med_{med['id']}_Pzt_0800"
    assert first["weekday"] == 2
    assert (first["hour"], first["minute"]) == (8, 0)
    assert reminders[-1]["weekday"] == 1
    assert reminders[-1]["minute"] == 30


def test_unknown_day_code_skipped(tmp_db):
    med = tmp_db.insert_medicine("u1", "Aspirin", days=["Mon", "Sal"], times=["08:00"])
    reminders = _scheduler(tmp_db).medicine_reminders(med)
    assert [r["weekday"] for r in reminders] == [3]


def test_schedule_medicine_persists_and_cancels(tmp_db):
    scheduler = _scheduler(tmp_db)
    med = tmp_db.insert_medicine("u1", "Aspirin", days=["Pzt", "Sal"], times=["08:00"])
    assert scheduler.schedule_medicine(med) == 2
    assert scheduler.schedule_medicine(med) == 2
    assert len(tmp_db.list_reminders("medicine")) == 2
    assert scheduler.cancel_medicine(med["id"]) == 2


def test_plan_reminder_fires_fifteen_minutes_early(tmp_db):
    plan = tmp_db.insert_plan("u1", "Doktor", "2025-03-11", "14:00")
    assert _scheduler(tmp_db).schedule_plan(plan)
    reminder = tmp_db.list_reminders("plan")[0]
    assert reminder["identifier"] == f"plan_{plan['id']}"
    assert reminder["fire_at"] == datetime(2025, 3, 11, 13, 45)
    assert "Doktor" in reminder["body"]


def test_past_plan_not_scheduled(tmp_db):
    plan = tmp_db.insert_plan("u1", "Dün", "2025-03-09", "10:00")
    assert not _scheduler(tmp_db).schedule_plan(plan)
    assert tmp_db.list_reminders("plan") == []


def test_plan_inside_lead_window_not_scheduled(tmp_db):
    plan = tmp_db.insert_plan("u1", "Yakın", "2025-03-10", "12:10")
    assert not _scheduler(tmp_db).schedule_plan(plan)
