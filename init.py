import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from models import Base
import config


def get_session(databaseUrl: str = None):
    """Создает и возвращает фабрику сессий SQLAlchemy и движок базы данных"""
    url = databaseUrl or config.DATABASE_URL
    connectArgs = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connectArgs)
    session_factory = sessionmaker(bind=engine)
    return session_factory, engine


def init_tables(engine):
    """Инициализирует таблицы базы данных"""
    Base.metadata.create_all(engine)


def setup_logging(level: str = None):
    """Configure root logging for scheduler/admin entry points."""
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format=config.LOG_FORMAT
    )
    # SQL echo is too noisy for batch runs
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


# Для обратной совместимости с существующим кодом
Session, _engine = get_session()
