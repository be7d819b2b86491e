from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.db.models import Base


# PUBLIC_INTERFACE
class Database:
    """
    Engine and session factory for one database URL.
    SQLite connections are shared across threads; an in-memory SQLite URL
    keeps a single connection so every session sees the same data.
    """

    def __init__(self, url: str, echo: bool = False):
        kwargs = {"echo": echo, "future": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                kwargs["poolclass"] = StaticPool
        self.url = url
        self.engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


# PUBLIC_INTERFACE
def get_db(request: Request):
    """
    Yields a SQLAlchemy session bound to the application's database.
    Closes the session after use.
    Example usage (FastAPI):
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
