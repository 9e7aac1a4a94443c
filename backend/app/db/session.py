"""Database session factory."""

from sqlalchemy.orm import sessionmaker

from backend.app.db.engine import engine

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
