from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, MetaData, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

ROOT_LOGGER_NAME = "photo_site"


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class SiteLogRow(Base):
    __tablename__ = "site_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    level: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)


class ResourceAccessRow(Base):
    __tablename__ = "resource_access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)


def create_engine_from_url(database_url: str) -> Engine:
    return create_engine(database_url, future=True)


def init_db(database_url: str | Engine) -> Engine:
    engine = (
        database_url if isinstance(database_url, Engine) else create_engine_from_url(database_url)
    )
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session, future=True)


class LogSink:
    """Relational sink for (category, level, message) log entries and access records.

    Write failures propagate as ``SQLAlchemyError``; callers decide whether a
    lost log line is worth failing for.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = session_factory(engine)

    def append(self, category: str, level: str, message: str) -> None:
        with self._sessions() as session:
            session.add(
                SiteLogRow(
                    timestamp=datetime.now(timezone.utc),
                    category=category,
                    level=level,
                    message=message,
                )
            )
            session.commit()

    def log_resource_access(self, location: str, ip_address: str) -> None:
        with self._sessions() as session:
            session.add(
                ResourceAccessRow(
                    timestamp=datetime.now(timezone.utc),
                    location=location,
                    ip_address=ip_address,
                )
            )
            session.commit()


def _category_for(record: logging.LogRecord) -> str:
    category = getattr(record, "category", None)
    if category:
        return str(category)
    parts = record.name.split(".")
    if len(parts) > 1 and parts[0] == ROOT_LOGGER_NAME:
        return parts[1].upper()
    return parts[0].upper()


class LogSinkHandler(logging.Handler):
    """Mirror ``photo_site`` log records into the ``site_logs`` table."""

    def __init__(self, sink: LogSink, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            level = "TRACE" if record.levelno <= logging.DEBUG else record.levelname
            self.sink.append(_category_for(record), level, message)
        except Exception:
            self.handleError(record)


def install_log_sink(sink: LogSink, level: int = logging.INFO) -> LogSinkHandler:
    """Attach a sink handler to the package logger, replacing any earlier one."""
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if isinstance(handler, LogSinkHandler):
            package_logger.removeHandler(handler)
    handler = LogSinkHandler(sink, level=level)
    package_logger.addHandler(handler)
    return handler
