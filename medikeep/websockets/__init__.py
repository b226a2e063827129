"""
==============================================================================
WebSocket Package
==============================================================================

Real-time WebSocket handlers for QR scanning.

Handlers:
---------
- identify: Camera-driven patient identification sessions

==============================================================================
"""

from .identify import router as identify_router

__all__ = ["identify_router"]
