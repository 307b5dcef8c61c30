"""Compliance Tracker - API Routers"""
from .auth import router as auth_router
from .compliance import router as compliance_router
from .todos import router as todos_router
from .resources import router as resources_router
from .nexus import router as nexus_router

__all__ = [
    "auth_router",
    "compliance_router",
    "todos_router",
    "resources_router",
    "nexus_router",
]
