"""
Flow Backend - HTTP and WebSocket surface over a FlowStore.
"""

from .main import create_app

__all__ = ["create_app"]
