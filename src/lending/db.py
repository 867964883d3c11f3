from typing import Any, List, Mapping, Optional

from sqlalchemy import JSON, String, create_engine, select, delete
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from lending.store import Record, matches

class Base(DeclarativeBase):
    pass

class RecordRow(Base):
    __tablename__ = "record"
    table_name: Mapped[str] = mapped_column(String, primary_key=True)
    id: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

def make_engine(url: str) -> Engine:
    if url.startswith("sqlite") and ":memory:" in url:
        # one shared connection, otherwise every session sees an empty database
        return create_engine(url, future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, future=True, pool_pre_ping=True, pool_recycle=1800)

def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)

class SqlStore:
    """Store backed by a single SQL table of JSON payloads."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(engine, expire_on_commit=False, class_=Session)
        init_db(engine)

    @classmethod
    def from_url(cls, url: str) -> "SqlStore":
        return cls(make_engine(url))

    def get(self, table: str, id: str) -> Optional[Record]:
        with self.SessionLocal() as session:
            row = session.get(RecordRow, (table, id))
            return dict(row.payload) if row else None

    def get_all(self, table: str, filter: Optional[Mapping[str, Any]] = None) -> List[Record]:
        with self.SessionLocal() as session:
            rows = session.execute(select(RecordRow).where(RecordRow.table_name == table).order_by(RecordRow.id)).scalars().all()
            return [dict(r.payload) for r in rows if matches(r.payload, filter)]

    def put(self, table: str, record: Record) -> None:
        with self.SessionLocal() as session:
            session.merge(RecordRow(table_name=table, id=record["id"], payload=dict(record)))
            session.commit()

    def patch(self, table: str, id: str, fields: Mapping[str, Any]) -> None:
        with self.SessionLocal() as session:
            row = session.get(RecordRow, (table, id))
            if row is None:
                raise KeyError(f"{table}/{id}")
            # reassign so the JSON column is flagged dirty
            row.payload = {**row.payload, **dict(fields)}
            session.commit()

    def delete(self, table: str, id: str) -> bool:
        with self.SessionLocal() as session:
            res = session.execute(delete(RecordRow).where(RecordRow.table_name == table, RecordRow.id == id))
            session.commit()
            return res.rowcount > 0

    def dispose(self) -> None:
        self.engine.dispose()
