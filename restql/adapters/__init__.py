"""Framework adapters for restql."""

from .fastapi import create_router

__all__ = ["create_router"]
