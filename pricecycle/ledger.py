"""
Per-item pricing ledger (base price, run count, last run date, last discount) in SQLite via SQLAlchemy.

Schema changes are additive only: missing columns are added on first use, existing rows are kept.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Integer, String, create_engine, inspect, select, text, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class ItemRecord(Base):
    __tablename__ = "Items"

    item_id: Mapped[str] = mapped_column("ItemId", String, primary_key=True)
    item_url: Mapped[str] = mapped_column("ItemUrl", String, nullable=False)
    title: Mapped[Optional[str]] = mapped_column("Title", String, nullable=True)
    base_price: Mapped[int] = mapped_column("BasePrice", Integer, nullable=False)
    run_count: Mapped[int] = mapped_column("RunCount", Integer, nullable=False)
    last_run_date: Mapped[Optional[str]] = mapped_column("LastRunDate", String, nullable=True)
    updated_at: Mapped[Optional[str]] = mapped_column("UpdatedAt", String, nullable=True)
    last_down_amount: Mapped[int] = mapped_column("LastDownAmount", Integer, nullable=False, default=0)
    last_down_at: Mapped[Optional[str]] = mapped_column("LastDownAt", String, nullable=True)
    last_down_rate_percent: Mapped[Optional[int]] = mapped_column("LastDownRatePercent", Integer, nullable=True)
    last_down_daily_down_yen: Mapped[Optional[int]] = mapped_column("LastDownDailyDownYen", Integer, nullable=True)
    last_down_run_index: Mapped[Optional[int]] = mapped_column("LastDownRunIndex", Integer, nullable=True)


# Columns added after the first schema version: name -> DDL fragment
ADDITIVE_COLUMNS = {
    "LastDownAmount": "INTEGER NOT NULL DEFAULT 0",
    "LastDownAt": "TEXT",
    "LastDownRatePercent": "INTEGER",
    "LastDownDailyDownYen": "INTEGER",
    "LastDownRunIndex": "INTEGER",
}


@dataclass
class ItemState:
    item_id: str
    item_url: str
    title: Optional[str] = None
    base_price: int = 0
    run_count: int = 0
    last_run_date: Optional[str] = None
    updated_at: Optional[str] = None
    last_down_amount: int = 0
    last_down_at: Optional[str] = None
    last_down_rate_percent: Optional[int] = None
    last_down_daily_down_yen: Optional[int] = None
    last_down_run_index: Optional[int] = None

    @classmethod
    def from_record(cls, rec: ItemRecord) -> "ItemState":
        return cls(
            item_id=rec.item_id,
            item_url=rec.item_url,
            title=rec.title,
            base_price=rec.base_price,
            run_count=rec.run_count,
            last_run_date=rec.last_run_date,
            updated_at=rec.updated_at,
            last_down_amount=rec.last_down_amount or 0,
            last_down_at=rec.last_down_at,
            last_down_rate_percent=rec.last_down_rate_percent,
            last_down_daily_down_yen=rec.last_down_daily_down_yen,
            last_down_run_index=rec.last_down_run_index,
        )


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ItemStateRepository:
    """Read/write contract of the ledger. Every write is a whole-row replace."""

    def __init__(self, db_path: Optional[Path] = None, engine: Optional[Engine] = None):
        if engine is None:
            if db_path is None:
                raise ValueError("db_path or engine is required")
            db_path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(f"sqlite:///{db_path}")
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._schema_ensured = False

    def ensure_schema(self) -> None:
        if self._schema_ensured:
            return
        Base.metadata.create_all(self._engine)
        existing = {c["name"].lower() for c in inspect(self._engine).get_columns(ItemRecord.__tablename__)}
        with self._engine.begin() as conn:
            for name, ddl in ADDITIVE_COLUMNS.items():
                if name.lower() in existing:
                    continue
                log.info("Ledger migration: adding column %s", name)
                conn.execute(text(f"ALTER TABLE {ItemRecord.__tablename__} ADD COLUMN {name} {ddl}"))
        self._schema_ensured = True

    def _session(self) -> Session:
        self.ensure_schema()
        return self._session_factory()

    def get(self, item_id: str) -> Optional[ItemState]:
        with self._session() as session:
            rec = session.get(ItemRecord, item_id)
            return ItemState.from_record(rec) if rec is not None else None

    def list_all(self) -> list[ItemState]:
        with self._session() as session:
            rows = session.scalars(select(ItemRecord).order_by(ItemRecord.item_id)).all()
            return [ItemState.from_record(r) for r in rows]

    def upsert(self, state: ItemState) -> None:
        """Insert if absent, else overwrite every field. Stamps updated_at."""
        state.updated_at = _utc_now()
        values = {
            "ItemId": state.item_id,
            "ItemUrl": state.item_url,
            "Title": state.title,
            "BasePrice": state.base_price,
            "RunCount": state.run_count,
            "LastRunDate": state.last_run_date,
            "UpdatedAt": state.updated_at,
            "LastDownAmount": state.last_down_amount,
            "LastDownAt": state.last_down_at,
            "LastDownRatePercent": state.last_down_rate_percent,
            "LastDownDailyDownYen": state.last_down_daily_down_yen,
            "LastDownRunIndex": state.last_down_run_index,
        }
        stmt = insert(ItemRecord.__table__).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["ItemId"],
            set_={k: stmt.excluded[k] for k in values if k != "ItemId"},
        )
        with self._session() as session:
            session.execute(stmt)
            session.commit()

    def update_run_count_if_new_day(self, item_id: str, today: str) -> bool:
        """Increment run_count and stamp today unless already run today. True if updated."""
        with self._session() as session:
            rec = session.get(ItemRecord, item_id)
            if rec is None or rec.last_run_date == today:
                return False
            rec.run_count = rec.run_count + 1
            rec.last_run_date = today
            rec.updated_at = _utc_now()
            session.commit()
            return True

    def reset_item(self, item_id: str, run_count: int = 0) -> bool:
        """Back to first-run state: run_count reset, last run date and last-discount metadata cleared."""
        stmt = (
            update(ItemRecord)
            .where(ItemRecord.item_id == item_id)
            .values({
                ItemRecord.run_count: run_count,
                ItemRecord.last_run_date: None,
                ItemRecord.updated_at: _utc_now(),
                ItemRecord.last_down_amount: 0,
                ItemRecord.last_down_at: None,
                ItemRecord.last_down_rate_percent: None,
                ItemRecord.last_down_daily_down_yen: None,
                ItemRecord.last_down_run_index: None,
            })
        )
        with self._session() as session:
            rows = session.execute(stmt).rowcount
            session.commit()
        return rows > 0

    def clear_last_run_date(self, item_id: str) -> bool:
        """Lift today's skip; run_count is kept."""
        stmt = update(ItemRecord).where(ItemRecord.item_id == item_id).values({ItemRecord.last_run_date: None})
        with self._session() as session:
            rows = session.execute(stmt).rowcount
            session.commit()
        return rows > 0

    def dispose(self) -> None:
        self._engine.dispose()
