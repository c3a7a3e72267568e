# storefront/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from storefront.utils.settings import DATABASE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

engine_kwargs = {
    "echo": False,
    "future": True,
    "pool_pre_ping": True,
}

# sqlite (dev/testy) ma inne wymagania co do puli
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}
    if ":memory:" in DATABASE_URL or DATABASE_URL.split("://", 1)[-1] == "":
        # jedna wspolna baza w pamieci dla wszystkich watkow
        engine_kwargs["poolclass"] = StaticPool
else:
    engine_kwargs.update(
        {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_recycle": 3600,
        }
    )

engine = create_engine(DATABASE_URL, **engine_kwargs)
logger.info(f"Database engine created for {engine.url.get_backend_name()}")

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
