from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from login_lockdown.errors import PersistenceError
from login_lockdown.models import AccountModel, Base

logger = logging.getLogger(__name__)

db_url = "sqlite:///./lockdown.db"
engine = None
SessionLocal = None


def _install_sqlite_begin(sqlite_engine):
    # pysqlite defers BEGIN until the first write; take over so that
    # exclusive sessions can ask for BEGIN IMMEDIATE up front.
    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin", "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


def init_db(url: str, timeout_s: int = 30):
    global db_url, engine, SessionLocal
    if engine is not None:
        engine.dispose()
    db_url = url

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": timeout_s})
        _install_sqlite_begin(engine)
    else:
        engine = create_engine(url, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as exc:
        raise PersistenceError(str(exc)) from exc
    logger.debug("database ready at %s", engine.url.render_as_string(hide_password=True))


def _begin_exclusive(session):
    if engine.dialect.name == "sqlite":
        session.connection(execution_options={"sqlite_begin": "IMMEDIATE"})
    else:
        session.connection(execution_options={"isolation_level": "SERIALIZABLE"})


@contextmanager
def get_session(exclusive: bool = False):
    """Yield a session that commits on success and rolls back on error.

    With ``exclusive=True`` the transaction takes the store's write lock before
    the first statement, serializing read-modify-write sequences across
    processes. Store failures are re-raised as :class:`PersistenceError`.
    """
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    session = SessionLocal()
    try:
        if exclusive:
            _begin_exclusive(session)
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("store operation failed: %s", exc)
        raise PersistenceError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def add_account(username: str) -> bool:
    """Register ``username`` with the account store. Returns False if it already exists."""
    try:
        with get_session() as session:
            session.add(AccountModel(username=username))
            session.flush()
    except PersistenceError as exc:
        if isinstance(exc.__cause__, IntegrityError):
            return False
        raise
    return True


def account_exists(username: str) -> bool:
    with get_session() as session:
        stmt = select(AccountModel.id).where(AccountModel.username == username)
        return session.execute(stmt).scalar_one_or_none() is not None
