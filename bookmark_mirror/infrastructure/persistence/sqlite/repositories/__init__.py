from bookmark_mirror.infrastructure.persistence.sqlite.repositories.bookmark_repository import (
    SqliteBookmarkRepositoryAdapter,
)
from bookmark_mirror.infrastructure.persistence.sqlite.repositories.bookmark_tag_repository import (
    SqliteBookmarkTagRepositoryAdapter,
)

__all__ = [
    "SqliteBookmarkRepositoryAdapter",
    "SqliteBookmarkTagRepositoryAdapter",
]
