# API Routes
from .sla_routes import router as sla_router

__all__ = [
    "sla_router",
]
