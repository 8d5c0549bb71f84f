"""TaskHub REST API."""

from taskhub.api.router import router

__all__ = ["router"]
