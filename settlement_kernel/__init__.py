"""
Settlement Kernel

Shared infrastructure for the lease settlement engine:
- Typed exception hierarchy
- Structured JSON logging
- Database base classes, engine, row locking and unit of work
- Injectable clock, canonical hashing, TTL cache, encrypted fields
"""

__version__ = "0.1.0"
