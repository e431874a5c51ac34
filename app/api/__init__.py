# API module - session routes
from .endpoints import router

__all__ = ["router"]
