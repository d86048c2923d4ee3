import os
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from core.config import cfg
from core.errors import StoreUnavailable
from core.events import E, log_event
from core.log import get_logger
from core.models.base import Base

logger = get_logger(__name__)

DEFAULT_DB_URL = "sqlite:///data/guardianest.db"


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    path = parsed.database
    if path and path != ":memory:":
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)


class Db:
    """数据库句柄：engine + session 工厂，服务层通过 session 显式传入。"""

    def __init__(self, url: str = DEFAULT_DB_URL, echo: bool = False):
        self.url = url
        _ensure_sqlite_dir(url)
        kwargs = {"echo": echo, "pool_pre_ping": True}
        if make_url(url).get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
        else:
            kwargs["pool_recycle"] = 3600
        self.engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_tables(self) -> None:
        # 导入全部模型后再建表
        import core.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        log_event(logger, E.SYSTEM_DB_INIT, backend=self.engine.dialect.name)

    def get_session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError as e:
            log_event(logger, E.SYSTEM_STORE_UNAVAILABLE, level="error", error=e)
            raise StoreUnavailable(str(e)) from e

    def dispose(self) -> None:
        self.engine.dispose()


DB = Db(str(cfg.get("db", DEFAULT_DB_URL)))


def get_session() -> Generator[Session, None, None]:
    """FastAPI 依赖：每个请求一个 session，结束时关闭。"""
    session = DB.get_session()
    try:
        yield session
    finally:
        session.close()
