from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def create_session_factory(database_url: str, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    """Build the engine and session factory once at process start."""
    engine = create_async_engine(database_url, echo=echo)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
