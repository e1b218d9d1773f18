# survey/db_connection.py
import logging
from typing import Callable, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from survey.config import DATABASE_URL
from survey.entities import Base

logger = logging.getLogger("survey_server")


class DBConnection:
    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        self.DATABASE_URL = database_url or DATABASE_URL
        self.IS_SQLITE = self.DATABASE_URL.startswith("sqlite")
        self._engine = engine
        self._sessionmaker: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            connect_args = {"check_same_thread": False} if self.IS_SQLITE else {}
            logger.info("[DB] Using %s", self.DATABASE_URL.split("@")[-1])
            self._engine = create_engine(
                self.DATABASE_URL,
                future=True,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
        return self._engine

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    # -------- SQLAlchemy Session factory --------
    def build_db_session_factory(self) -> Callable[[], Session]:
        if self._sessionmaker is None:
            self._sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=False,
                future=True,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory
