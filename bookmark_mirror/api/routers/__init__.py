from bookmark_mirror.api.routers import bookmark_tags, bookmarks, health

__all__ = ["bookmark_tags", "bookmarks", "health"]
