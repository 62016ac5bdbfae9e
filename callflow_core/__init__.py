"""
Call Flow Engine
================

Flow definition and versioning core for the voice bot platform.

This package provides:
- Node type registry for the nine call-flow node types
- Flow graph model and canonical exchange document
- Flow validation (blocking errors and advisory warnings)
- Version storage (in-memory and SQLAlchemy backends)
- Draft / staged / live / archived promotion lifecycle
- HTTP API for flow and version management
"""

__version__ = "1.0.0"
