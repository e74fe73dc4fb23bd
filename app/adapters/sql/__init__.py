"""SQLAlchemy persistence shared by the relational adapters."""

from app.adapters.sql.database import Database
from app.adapters.sql.models import Base, ObjectExpiryModel, RateCounterModel

__all__ = ["Base", "Database", "ObjectExpiryModel", "RateCounterModel"]
