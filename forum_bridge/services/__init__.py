from .forum import AvatarFetchError, ForumService

__all__ = ["AvatarFetchError", "ForumService"]
