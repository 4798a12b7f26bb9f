import logging
import time
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import Settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Create the SQLAlchemy engine described by settings"""
    if settings.database_url.startswith("sqlite"):
        # SQLite has no server-side pool; sessions may be used from worker threads
        engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False},
            echo=False,
        )

        @event.listens_for(engine, "connect")
        def enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    else:
        try:
            engine = create_engine(
                settings.database_url,
                pool_pre_ping=True,  # Test connections before using
                pool_recycle=settings.db_pool_recycle,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                echo=False,  # Don't log all SQL (use slow query logging instead)
            )
        except Exception as e:
            logger.error(f"❌ Failed to create database engine: {e}")
            raise
        logger.info(
            f"📊 Connection pool: size={settings.db_pool_size}, "
            f"max_overflow={settings.db_max_overflow}, timeout={settings.db_pool_timeout}s"
        )

    logger.info("✅ Database engine created successfully")

    if settings.db_log_slow_queries:
        threshold = settings.db_slow_query_threshold

        @event.listens_for(engine, "before_cursor_execute")
        def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            conn.info.setdefault("query_start_time", []).append(time.time())

        @event.listens_for(engine, "after_cursor_execute")
        def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            total = time.time() - conn.info["query_start_time"].pop(-1)
            if total > threshold:
                logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")

        logger.info(f"📊 Slow query logging enabled (threshold: {threshold}s)")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """Request-scoped session from the factory the app was built with"""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction on the given session.

    Everything done inside the block is committed together when it exits
    normally; any exception rolls the whole block back and is re-raised.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
