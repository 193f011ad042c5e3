from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from tenant_cache.config import DATABASE_URL, SQL_ECHO

# SQLite connections are shared with the threadpool that runs sync handlers
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=SQL_ECHO, future=True, pool_pre_ping=True, connect_args=connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)

# Base class for ORM models
Base = declarative_base()

# Dependency to get the database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
