"""
==============================================================================
MediKeep Patient Identification
==============================================================================

QR-based patient identification: payload codec, camera-driven scanner
sessions and quick-scan history, served over FastAPI.

==============================================================================
"""

__version__ = "1.0.0"
