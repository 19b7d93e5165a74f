"""Re-export all SQLAlchemy models and document types for import convenience."""

from favmatch.models.tables import Document, SetMember  # noqa: F401
from favmatch.models.documents import (  # noqa: F401
    Category, Gender, MatchGender, MatchLocation,
    FavoriteTitle, MatchInfo, User,
    USERS, QUOTAS, TITLE_INDEX,
)
