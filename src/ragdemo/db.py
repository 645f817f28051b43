from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase

from ragdemo.config import get_settings


class Base(DeclarativeBase):
    pass


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        # Batch ingestion jobs update their rows from background threads.
        connect_args["check_same_thread"] = False
    return create_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def init_db() -> None:
    # Imported for its side effect of registering tables on Base.metadata.
    from ragdemo import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
