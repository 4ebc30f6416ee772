"""PowerDNS-style record store backed by SQLAlchemy.

The tables follow the PowerDNS generic SQL schema (``domains``, ``records``)
plus ``unifi_hosts`` for raw device observations. Tables are created on
open if they do not exist yet.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import PersistenceFailed
from ..config.settings import ConfigurationInvalid, DatabaseSettings
from ..reconcile.projection import plan_records
from ..reconcile.schema import Entry, RecordPlan
from ..utils.logging_config import timed_section_sync

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Domain(Base):
    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    master: Mapped[Optional[str]] = mapped_column(String(128))
    last_check: Mapped[Optional[int]] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(6), nullable=False)
    notified_serial: Mapped[Optional[int]] = mapped_column(Integer)
    account: Mapped[Optional[str]] = mapped_column(String(40))


class Record(Base):
    __tablename__ = "records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    domain_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(10))
    content: Mapped[str] = mapped_column(Text)
    ttl: Mapped[int] = mapped_column(Integer, default=3600)
    prio: Mapped[int] = mapped_column(Integer, default=0)
    change_date: Mapped[int] = mapped_column(Integer, default=0)
    disabled: Mapped[bool] = mapped_column(Boolean, default=False)

    def __repr__(self) -> str:
        return f"Record({self.name} {self.type} {self.content})"


class UnifiHost(Base):
    __tablename__ = "unifi_hosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    ip: Mapped[str] = mapped_column(String(45), nullable=False)
    last_seen: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    first_seen: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


def database_url(driver: str, dsn: str) -> str:
    """Build an SQLAlchemy URL from the configured driver and DSN.

    ``sqlite`` takes a file path or ``:memory:``; ``url`` passes a full
    SQLAlchemy URL through unchanged.

    Raises:
        ConfigurationInvalid: For any other driver
    """
    driver = driver.lower()
    if driver == "sqlite":
        if dsn == ":memory:":
            return "sqlite+pysqlite:///:memory:"
        return f"sqlite+pysqlite:///{Path(dsn).expanduser()}"
    if driver == "url":
        return dsn
    raise ConfigurationInvalid(f"unsupported database driver: {driver}")


class RecordStore:
    """
    Reads and writes A/CNAME records.

    Usage:
        store = RecordStore.open(config.database)
        store.save(entries, config.processing.cnames)
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        try:
            self.engine = create_engine(url, echo=echo)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Cannot open database: {e}") from e
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @classmethod
    def open(cls, settings: DatabaseSettings) -> "RecordStore":
        store = cls(database_url(settings.driver, settings.dsn))
        logger.info(f"Database connection opened driver={settings.driver}")
        return store

    def close(self) -> None:
        self.engine.dispose()

    def existing_records(self, record_type: str, session: Optional[Session] = None) -> dict[str, str]:
        """Current records of one type as name -> content."""
        if session is None:
            with self._session_factory() as session:
                return self.existing_records(record_type, session)
        rows = session.scalars(select(Record).where(Record.type == record_type))
        return {row.name: row.content for row in rows}

    def apply(self, plan: RecordPlan, session: Session) -> None:
        """Apply a record plan inside the caller's transaction."""
        for change in plan.updates:
            session.execute(
                update(Record)
                .where(Record.name == change.name, Record.type == change.type)
                .values(content=change.content)
            )
        session.add_all([
            Record(name=c.name, type=c.type, content=c.content, ttl=c.ttl)
            for c in plan.inserts
        ])

    def save(self, entries: Iterable[Entry], aliases: Optional[Iterable] = None) -> RecordPlan:
        """Upsert A records for kept entries and CNAMEs for aliases.

        Everything happens in one transaction.

        Raises:
            PersistenceFailed: If the database rejects the batch
        """
        try:
            with timed_section_sync("save_records"):
                with self._session_factory.begin() as session:
                    plan = plan_records(
                        entries,
                        self.existing_records("A", session),
                        self.existing_records("CNAME", session),
                        aliases,
                    )
                    self.apply(plan, session)
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Cannot save records: {e}") from e

        if plan.updates:
            logger.info(f"Updated {len(plan.updates)} database records")
        else:
            logger.info("No database records to update")
        if plan.inserts:
            logger.info(f"Inserted {len(plan.inserts)} database records")
        else:
            logger.info("No database records to insert")
        return plan
