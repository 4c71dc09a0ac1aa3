"""SQLite data store for medicines, family members, taken logs, plans and reminders."""

from __future__ import annotations

import os
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ebaston.intents import FamilyMember as FamilyMemberSnapshot
from ebaston.intents import KnownMedicine
from ebaston.logging_config import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Medicine(Base):
    __tablename__ = "medicines"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    dose = Column(String, default="")
    days = Column(JSON, default=list)  # weekday codes, e.g. ["Pzt", "Çar"]
    times = Column(JSON, default=list)  # "HH:MM"
    note = Column(Text, default="")
    color = Column(String, default="")
    icon = Column(String, default="")
    created_at = Column(DateTime, default=_utcnow)


class FamilyMember(Base):
    __tablename__ = "family_members"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)


class MedicineTakenLog(Base):
    __tablename__ = "medicine_taken_logs"
    __table_args__ = (UniqueConstraint("user_id", "medicine_id", "taken_date"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    medicine_id = Column(Integer, nullable=False)
    taken_date = Column(Date, nullable=False)
    taken_at = Column(DateTime, default=_utcnow)


class Plan(Base):
    __tablename__ = "plans"
    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    plan_date = Column(String, nullable=False)  # YYYY-MM-DD
    plan_time = Column(String, nullable=False)  # HH:MM
    note = Column(Text, default="")
    created_at = Column(DateTime, default=_utcnow)


class Reminder(Base):
    __tablename__ = "reminders"
    id = Column(Integer, primary_key=True)
    identifier = Column(String, unique=True, nullable=False)
    kind = Column(String, nullable=False)  # medicine, plan
    ref_id = Column(Integer, nullable=False)
    weekday = Column(Integer, nullable=True)  # 1=Paz ... 7=Cmt, weekly reminders
    fire_at = Column(DateTime, nullable=True)  # one-shot reminders
    hour = Column(Integer, nullable=False)
    minute = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, default="")


def _medicine_dict(m: Medicine) -> dict:
    return {
        "id": m.id,
        "name": m.name,
        "dose": m.dose or "",
        "days": list(m.days or []),
        "times": list(m.times or []),
        "note": m.note or "",
        "color": m.color or "",
        "icon": m.icon or "",
    }


def _plan_dict(p: Plan) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "plan_date": p.plan_date,
        "plan_time": p.plan_time,
        "note": p.note or "",
    }


class DatabaseManager:
    """Per-user storage behind the voice assistant and the medicine wizard."""

    def __init__(self, db_path: str):
        db_path = os.path.expanduser(db_path)
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        self.engine = create_engine(f"sqlite:///{db_path}", echo=False)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    def init_db(self):
        """Create all tables if they don't exist."""
        Base.metadata.create_all(self.engine)

    def _session(self) -> Session:
        return self._Session()

    # -- Known entities --

    def fetch_medicines(self, user_id: str) -> list[KnownMedicine]:
        with self._session() as s:
            rows = s.query(Medicine).filter_by(user_id=user_id).order_by(Medicine.id).all()
            return [
                KnownMedicine(id=m.id, name=m.name, dose=m.dose or "", days=tuple(m.days or ()))
                for m in rows
            ]

    def fetch_family_members(self, user_id: str) -> list[FamilyMemberSnapshot]:
        with self._session() as s:
            rows = s.query(FamilyMember).filter_by(user_id=user_id).order_by(FamilyMember.id).all()
            return [FamilyMemberSnapshot(id=f.id, name=f.name, phone=f.phone) for f in rows]

    def add_family_member(self, user_id: str, name: str, phone: str | None = None) -> int:
        with self._session() as s:
            member = FamilyMember(user_id=user_id, name=name, phone=phone or None)
            s.add(member)
            s.commit()
            return member.id

    # -- Taken logs --

    def mark_medicine_taken(self, user_id: str, medicine_id: int, day: date | None = None) -> int:
        """Record a dose for (user, medicine, day). Repeat marks update taken_at only."""
        day = day or date.today()
        with self._session() as s:
            entry = (
                s.query(MedicineTakenLog)
                .filter_by(user_id=user_id, medicine_id=medicine_id, taken_date=day)
                .first()
            )
            if entry:
                entry.taken_at = _utcnow()
            else:
                entry = MedicineTakenLog(user_id=user_id, medicine_id=medicine_id, taken_date=day)
                s.add(entry)
            s.commit()
            log.info("Medicine %s marked taken for %s on %s", medicine_id, user_id, day)
            return entry.id

    def unmark_medicine_taken(self, user_id: str, medicine_id: int, day: date | None = None) -> bool:
        day = day or date.today()
        with self._session() as s:
            deleted = (
                s.query(MedicineTakenLog)
                .filter_by(user_id=user_id, medicine_id=medicine_id, taken_date=day)
                .delete()
            )
            s.commit()
            return deleted > 0

    def fetch_taken_ids(self, user_id: str, day: date | None = None) -> list[int]:
        day = day or date.today()
        with self._session() as s:
            rows = s.query(MedicineTakenLog.medicine_id).filter_by(user_id=user_id, taken_date=day)
            return [r.medicine_id for r in rows]

    # -- Inserts --

    def insert_medicine(
        self,
        user_id: str,
        name: str,
        dose: str = "",
        days: list[str] | None = None,
        times: list[str] | None = None,
        note: str = "",
        color: str = "",
        icon: str = "",
    ) -> dict:
        """Insert a medicine and return the saved record."""
        with self._session() as s:
            med = Medicine(
                user_id=user_id, name=name, dose=dose,
                days=list(days or []), times=list(times or []),
                note=note, color=color, icon=icon,
            )
            s.add(med)
            s.commit()
            log.info("Medicine #%d saved: %s", med.id, name)
            return _medicine_dict(med)

    def insert_plan(
        self,
        user_id: str,
        title: str,
        plan_date: str,
        plan_time: str,
        note: str = "",
    ) -> dict:
        """Insert a plan and return the saved record."""
        with self._session() as s:
            plan = Plan(
                user_id=user_id, title=title,
                plan_date=plan_date, plan_time=plan_time, note=note,
            )
            s.add(plan)
            s.commit()
            log.info("Plan #%d saved: %s on %s %s", plan.id, title, plan_date, plan_time)
            return _plan_dict(plan)

    def list_medicines(self, user_id: str) -> list[dict]:
        with self._session() as s:
            rows = s.query(Medicine).filter_by(user_id=user_id).order_by(Medicine.id).all()
            return [_medicine_dict(m) for m in rows]

    def list_plans(self, user_id: str) -> list[dict]:
        with self._session() as s:
            rows = (
                s.query(Plan)
                .filter_by(user_id=user_id)
                .order_by(Plan.plan_date, Plan.plan_time)
                .all()
            )
            return [_plan_dict(p) for p in rows]

    # -- Reminders --

    def save_reminders(self, reminders: list[dict]) -> int:
        """Upsert reminders by identifier. Returns how many were written."""
        with self._session() as s:
            for data in reminders:
                existing = s.query(Reminder).filter_by(identifier=data["identifier"]).first()
                if existing:
                    for key, value in data.items():
                        setattr(existing, key, value)
                else:
                    s.add(Reminder(**data))
            s.commit()
        return len(reminders)

    def delete_reminders(self, kind: str, ref_id: int) -> int:
        with self._session() as s:
            deleted = s.query(Reminder).filter_by(kind=kind, ref_id=ref_id).delete()
            s.commit()
            return deleted

    def list_reminders(self, kind: str | None = None) -> list[dict]:
        with self._session() as s:
            q = s.query(Reminder)
            if kind:
                q = q.filter_by(kind=kind)
            return [
                {
                    "identifier": r.identifier,
                    "kind": r.kind,
                    "ref_id": r.ref_id,
                    "weekday": r.weekday,
                    "fire_at": r.fire_at,
                    "hour": r.hour,
                    "minute": r.minute,
                    "title": r.title,
                    "body": r.body,
                }
                for r in q.order_by(Reminder.id).all()
            ]
