# database/connection.py
import logging
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from database.base import Base

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ---------- session ----------
def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------- bootstrap ----------
def import_all_models() -> None:
    # models must be imported before create_all / mapper configuration
    from modules.organization import models as _org_models  # noqa: F401
    from modules.users import models as _user_models  # noqa: F401
    from modules.booking import models as _booking_models  # noqa: F401
    from modules.security import models as _security_models  # noqa: F401


def create_all_tables(bind=None) -> None:
    import_all_models()
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables ensured.")
