"""Routine PostgreSQL maintenance: sessions, index bloat, partitions and vacuum/analyze."""

__version__ = "0.1.0"