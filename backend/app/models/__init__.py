"""Re-export all SQLAlchemy models for import convenience."""

from app.models.tables import (  # noqa: F401
    User,
    Movie, Series,
    Ad,
)
