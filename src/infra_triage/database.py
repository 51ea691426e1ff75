"""SQLite persistence layer for reports and outage telemetry using SQLModel."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, List

from sqlalchemy import update
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from .geo import normalize_area_name
from .models import OutageTelemetry, Report, ResolvedPowerTag
from .time_utils import ensure_utc


class ReportRecord(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    type: str = Field(index=True)
    operator: str | None = None
    description: str | None = None
    street: str | None = None
    parish: str | None = Field(default=None, index=True)
    concelho: str | None = Field(default=None, index=True)
    lat: float
    lng: float
    resolved: bool = Field(default=False, index=True)
    upvotes: int = 1
    priority: str = "normal"
    created_at: datetime = Field(index=True)
    last_upvoted_at: datetime
    image_url: str | None = None
    power_source: str | None = None
    resolved_at: datetime | None = None


class OutageSnapshotRecord(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    municipality: str
    # Accent- and case-folded name; feeds spell municipalities inconsistently.
    municipality_key: str = Field(index=True)
    outage_count: int
    extraction_datetime: str | None = None
    fetched_at: datetime = Field(index=True)


def default_db_path() -> Path:
    return Path.home() / ".infra-triage" / "reports.db"


def build_engine(path: Path | None = None):
    db_path = path or default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{db_path}")


def _to_report(record: ReportRecord) -> Report:
    return Report(
        id=int(record.id or 0),
        type=record.type,
        operator=record.operator,
        description=record.description,
        street=record.street,
        parish=record.parish,
        concelho=record.concelho,
        lat=record.lat,
        lng=record.lng,
        resolved=record.resolved,
        upvotes=record.upvotes,
        priority=record.priority,
        created_at=ensure_utc(record.created_at),
        last_upvoted_at=ensure_utc(record.last_upvoted_at),
        image_url=record.image_url,
        power_source=record.power_source,
        resolved_at=ensure_utc(record.resolved_at) if record.resolved_at else None,
    )


class ReportStore:
    """Report and telemetry storage; every mutation is one statement."""

    def __init__(self, engine) -> None:
        self._engine = engine
        SQLModel.metadata.create_all(engine)

    @classmethod
    def open(cls, path: Path | None = None) -> "ReportStore":
        return cls(build_engine(path))

    def insert(self, record: ReportRecord) -> Report:
        record.created_at = ensure_utc(record.created_at)
        record.last_upvoted_at = ensure_utc(record.last_upvoted_at)
        with Session(self._engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_report(record)

    def get(self, report_id: int) -> Report | None:
        with Session(self._engine) as session:
            record = session.get(ReportRecord, report_id)
            return _to_report(record) if record else None

    def increment_upvotes(self, report_id: int, now: datetime) -> bool:
        """Atomic ``upvotes + 1`` on an unresolved report; False if nothing matched."""
        statement = (
            update(ReportRecord)
            .where(col(ReportRecord.id) == report_id)
            .where(col(ReportRecord.resolved) == False)  # noqa: E712
            .values(
                upvotes=col(ReportRecord.upvotes) + 1,
                last_upvoted_at=ensure_utc(now),
            )
        )
        with Session(self._engine) as session:
            result = session.exec(statement)
            session.commit()
            return bool(result.rowcount)

    def mark_resolved(self, report_id: int, now: datetime, power_source: str | None = None) -> bool:
        """Set resolved=true; the first resolution also stamps time and tag."""
        first = (
            update(ReportRecord)
            .where(col(ReportRecord.id) == report_id)
            .where(col(ReportRecord.resolved) == False)  # noqa: E712
            .values(resolved=True, resolved_at=ensure_utc(now), power_source=power_source)
        )
        with Session(self._engine) as session:
            result = session.exec(first)
            session.commit()
            return bool(result.rowcount)

    def set_area(self, report_id: int, parish: str, concelho: str) -> None:
        statement = (
            update(ReportRecord)
            .where(col(ReportRecord.id) == report_id)
            .values(parish=parish, concelho=concelho)
        )
        with Session(self._engine) as session:
            session.exec(statement)
            session.commit()

    def list_unresolved_since(
        self,
        since: datetime,
        *,
        parishes: Iterable[str] | None = None,
        report_type: str | None = None,
    ) -> List[Report]:
        statement = (
            select(ReportRecord)
            .where(col(ReportRecord.resolved) == False)  # noqa: E712
            .where(col(ReportRecord.created_at) >= ensure_utc(since))
        )
        if parishes is not None:
            statement = statement.where(col(ReportRecord.parish).in_(list(parishes)))
        if report_type is not None:
            statement = statement.where(col(ReportRecord.type) == report_type)
        statement = statement.order_by(col(ReportRecord.created_at).desc())
        with Session(self._engine) as session:
            return [_to_report(r) for r in session.exec(statement)]

    def list_missing_parish(self) -> List[Report]:
        statement = select(ReportRecord).where(col(ReportRecord.parish).is_(None)).order_by(col(ReportRecord.id))
        with Session(self._engine) as session:
            return [_to_report(r) for r in session.exec(statement)]

    def resolved_power_tags(self, since: datetime, parishes: Iterable[str]) -> List[ResolvedPowerTag]:
        statement = (
            select(ReportRecord)
            .where(col(ReportRecord.resolved) == True)  # noqa: E712
            .where(col(ReportRecord.type) == "electricity")
            .where(col(ReportRecord.power_source).is_not(None))
            .where(col(ReportRecord.resolved_at) >= ensure_utc(since))
            .where(col(ReportRecord.parish).in_(list(parishes)))
            .order_by(col(ReportRecord.resolved_at).desc())
        )
        with Session(self._engine) as session:
            return [
                ResolvedPowerTag(
                    parish=r.parish or "",
                    power_source=r.power_source,
                    resolved_at=ensure_utc(r.resolved_at),
                )
                for r in session.exec(statement)
            ]

    def record_outages(self, snapshots: Iterable[OutageTelemetry], now: datetime) -> int:
        count = 0
        with Session(self._engine) as session:
            for snapshot in snapshots:
                session.add(
                    OutageSnapshotRecord(
                        municipality=snapshot.municipality,
                        municipality_key=normalize_area_name(snapshot.municipality),
                        outage_count=snapshot.outage_count,
                        extraction_datetime=snapshot.extraction_datetime,
                        fetched_at=ensure_utc(snapshot.fetched_at or now),
                    )
                )
                count += 1
            session.commit()
        return count

    def latest_outage(self, municipality: str) -> OutageTelemetry | None:
        statement = (
            select(OutageSnapshotRecord)
            .where(col(OutageSnapshotRecord.municipality_key) == normalize_area_name(municipality))
            .order_by(col(OutageSnapshotRecord.fetched_at).desc(), col(OutageSnapshotRecord.id).desc())
            .limit(1)
        )
        with Session(self._engine) as session:
            record = session.exec(statement).first()
            if record is None:
                return None
            return OutageTelemetry(
                municipality=record.municipality,
                outage_count=record.outage_count,
                extraction_datetime=record.extraction_datetime,
                fetched_at=ensure_utc(record.fetched_at),
            )
