"""Routers package for QueueEase API."""

from .queue import router as queue_router
from .doctor import router as doctor_router

__all__ = [
    "queue_router",
    "doctor_router"
]
