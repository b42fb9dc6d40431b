from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./grantflow.db")

if DATABASE_URL.startswith("sqlite"):
    engine_args = {"connect_args": {"check_same_thread": False, "timeout": 30}}
else:
    statement_timeout_ms = int(os.getenv("DATABASE_STATEMENT_TIMEOUT_MS", "15000"))
    engine_args = {
        "connect_args": {"options": f"-c statement_timeout={statement_timeout_ms}"},
        "pool_timeout": 30,
    }

engine = create_engine(DATABASE_URL, **engine_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
