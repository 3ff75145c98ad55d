# =============================================================================
# Database Package
# =============================================================================
# SQLAlchemy engine/session factories and ORM models.
#
# Key exports:
#   - Base: declarative base
#   - Document, Chunk: ORM models for sources and their embedded chunks
# =============================================================================
