"""
Persistence layer.

    - models.py: SQLAlchemy ORM models
    - database.py: Engine and transactional sessions
    - repository.py: Queries and idempotent writes
"""
from .database import Database
from .repository import AffirmationRepository

__all__ = ["Database", "AffirmationRepository"]
