from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool
from .config import DATABASE_URL

# SQLite (tests, local runs) needs a shared connection across threads
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)


def create_db_and_tables():
    # Import models so their tables are registered on the metadata
    from .models import letter  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
