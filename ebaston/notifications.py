"""Reminder scheduling for saved medicines and plans."""

from datetime import datetime, timedelta

from ebaston.database import DatabaseManager
from ebaston.logging_config import get_logger

log = get_logger(__name__)

# Weekday numbering used by the reminder store: 1=Pazar ... 7=Cumartesi
DAY_TO_WEEKDAY = {
    "Paz": 1,
    "Pzt": 2,
    "Sal": 3,
    "Çar": 4,
    "Per": 5,
    "Cum": 6,
    "Cmt": 7,
}

PLAN_LEAD = timedelta(minutes=15)


def _split_time(value: str) -> tuple[int, int]:
    hour, minute = value.split(":")
    return int(hour), int(minute)


class ReminderScheduler:
    """Writes reminder rows for medicines (weekly) and plans (one-shot)."""

    def __init__(self, db: DatabaseManager, now=datetime.now):
        self.db = db
        self._now = now

    def medicine_reminders(self, medicine: dict) -> list[dict]:
        """One weekly reminder per (day, time) pair of the medicine."""
        reminders = []
        for day in medicine.get("days") or []:
            weekday = DAY_TO_WEEKDAY.get(day)
            if weekday is None:
                log.warning("Unknown day code %r for medicine %s", day, medicine.get("name"))
                continue
            for time in medicine.get("times") or []:
                hour, minute = _split_time(time)
                reminders.append({
                    "identifier": f"med_{medicine['id']}_{day}_{time.replace(':', '')}",
                    "kind": "medicine",
                    "ref_id": medicine["id"],
                    "weekday": weekday,
                    "fire_at": None,
                    "hour": hour,
                    "minute": minute,
                    "title": "💊 İlaç Zamanı!",
                    "body": f"{medicine['name']} almanız gerekiyor",
                })
        return reminders

    def schedule_medicine(self, medicine: dict) -> int:
        reminders = self.medicine_reminders(medicine)
        count = self.db.save_reminders(reminders)
        log.info("%s: %d reminders scheduled", medicine.get("name"), count)
        return count

    def schedule_plan(self, plan: dict) -> bool:
        """Schedule a reminder 15 minutes before the plan. Past plans are skipped."""
        if not plan.get("plan_date") or not plan.get("plan_time"):
            return False
        start = datetime.strptime(f"{plan['plan_date']} {plan['plan_time']}", "%Y-%m-%d %H:%M")
        fire_at = start - PLAN_LEAD
        if fire_at <= self._now():
            log.info("Plan %s is in the past, no reminder", plan.get("title"))
            return False
        self.db.save_reminders([{
            "identifier": f"plan_{plan['id']}",
            "kind": "plan",
            "ref_id": plan["id"],
            "weekday": None,
            "fire_at": fire_at,
            "hour": fire_at.hour,
            "minute": fire_at.minute,
            "title": "📅 Yaklaşan Plan",
            "body": f"{plan['title']} - 15 dakika sonra",
        }])
        log.info("Plan reminder scheduled: %s at %s", plan["title"], fire_at.isoformat())
        return True

    def cancel_medicine(self, medicine_id: int) -> int:
        return self.db.delete_reminders("medicine", medicine_id)

    def cancel_plan(self, plan_id: int) -> int:
        return self.db.delete_reminders("plan", plan_id)
