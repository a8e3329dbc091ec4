from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from models import Base
import config


def get_session(database_url: Optional[str] = None):
    """Фабрика сессий и движок для базы сети (по умолчанию config.DATABASE_URL)"""
    url = database_url or config.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, connect_args=connect_args)
    session_factory = sessionmaker(bind=engine)
    return session_factory, engine


def init_tables(engine):
    """Создает все таблицы дерева, журнала и комиссий"""
    Base.metadata.create_all(engine)


# Module-level factory used by main.py; tests build their own
Session, _engine = get_session()
