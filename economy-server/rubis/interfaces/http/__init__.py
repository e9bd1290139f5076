"""HTTP calling layer"""

from .errors import register_error_handlers
from .routers import create_api_router

__all__ = ["create_api_router", "register_error_handlers"]
