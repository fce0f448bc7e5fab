"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.matching import router as matching_router
from routes.transfer import router as transfer_router

__all__ = [
    "matching_router",
    "transfer_router",
]
