from contextlib import contextmanager

from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from .config import settings


def serialize_sqlite_writes(engine):
    """
    Make every SQLite transaction take the write lock at BEGIN.

    pysqlite defers BEGIN until the first INSERT/UPDATE, so a count followed by
    an insert would run unlocked; FOR UPDATE is ignored by SQLite.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


# Configure connection pool for better performance
engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    **(
        {"connect_args": {"check_same_thread": False}}
        if settings.database_url.startswith("sqlite")
        else {"pool_size": 5, "max_overflow": 10, "pool_recycle": 3600}
    ),
)
if engine.dialect.name == "sqlite":
    serialize_sqlite_writes(engine)

# IMPORTANT: do not use scoped_session with async frameworks; create a fresh Session per request
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Run a check-then-write block as one transaction.

    Commits on success and publishes the events queued on the session outbox.
    On any error the transaction is rolled back and the outbox discarded;
    unexpected persistence faults surface as InternalError.
    """
    from .errors import ResourceHubError, InternalError
    from .services import events

    try:
        yield db
        db.commit()
    except ResourceHubError:
        db.rollback()
        events.discard(db)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        events.discard(db)
        raise InternalError() from e
    except Exception:
        db.rollback()
        events.discard(db)
        raise
    events.publish(db)
