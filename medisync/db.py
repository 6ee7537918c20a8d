from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool
from medisync.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    """Build an engine; in-memory SQLite shares one connection so tables survive."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(url, echo=False)


engine = make_engine()


def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)


def get_session(bind=None):
    return Session(bind or engine)
