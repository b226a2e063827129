"""
==============================================================================
API v1 Endpoints
==============================================================================

Version 1 of the REST API.

Routers:
--------
- health: Health check endpoints
- identity: Patient QR encode/decode

==============================================================================
"""

from . import health, identity

__all__ = ["health", "identity"]
