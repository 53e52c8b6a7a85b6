import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from agrisync.config import get_settings
from agrisync.models.base import Base

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_settings().resolved_database_url()
_is_sqlite = SQLALCHEMY_DATABASE_URL.startswith("sqlite")

_connect_args = {"check_same_thread": False} if _is_sqlite else {}


def enable_sqlite_savepoints(target: Engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so per-item SAVEPOINTs work."""

    @event.listens_for(target, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args=_connect_args,
)
if _is_sqlite:
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    # register every mapped table on Base.metadata
    import agrisync.models.measurement  # noqa: F401
    import agrisync.models.job  # noqa: F401
    import agrisync.models.expense  # noqa: F401
    import agrisync.models.payment  # noqa: F401
    import agrisync.models.sync_log  # noqa: F401
    import agrisync.models.tracking_point  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("database schema ready (%s)", engine.url.render_as_string(hide_password=True))


def get_db():
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
