# statcounter/models/__init__.py
# Central import surface for SQLModel table registration.
# Keeping these imports ensures init_db() sees all models and creates tables.

from .region import Region
from .user import User, UserRole
from .stat_daily import FLOAT_FIELDS, INT_FIELDS, NUMERIC_FIELDS, StatDaily

__all__ = [
    "Region",
    "User",
    "UserRole",
    "StatDaily",
    "FLOAT_FIELDS",
    "INT_FIELDS",
    "NUMERIC_FIELDS",
]
