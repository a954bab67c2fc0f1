"""Engine/sessões do SQLAlchemy 2 e relógio UTC do banco."""
from datetime import datetime, timezone
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

def build_engine(database_url: str) -> Engine:
    """Cria engine síncrona. Em SQLite o BEGIN fica explícito para SAVEPOINT funcionar
    (o pysqlite abre transações por conta própria e quebra begin_nested)."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, future=True)
    engine = create_engine(database_url, future=True)

    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine

def create_session_factory(database_url: str | None = None, engine: Engine | None = None):
    """Cria SessionFactory síncrona para SQLAlchemy 2.

    :param database_url: URL completa do banco (psycopg3 em produção).
    :param engine: engine já criada; tem precedência sobre a URL.
    :return: sessionmaker configurado.
    """
    engine = engine or build_engine(database_url)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def utcnow() -> datetime:
    """Agora em UTC, sem tzinfo (colunas TIMESTAMP sem timezone)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def from_epoch(value) -> datetime | None:
    """Converte epoch em segundos (str|int) para datetime UTC; None se inválido."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
