"""
Client module for docsync - the remote content API over HTTP.
"""

from .errors import ApiError, NotFoundError, RateLimitError, UnauthorizedError
from .remote import Page, RemoteClient, SyncPage

__all__ = [
    "ApiError",
    "NotFoundError",
    "Page",
    "RateLimitError",
    "RemoteClient",
    "SyncPage",
    "UnauthorizedError",
]
