"""
Controller Kernel

Shared foundation for the controllership engine:
- Typed exceptions and diagnostic warnings
- Structured JSON logging
- Injectable clock
- Immutable domain value objects (periods, statement lines, budget rules)
- SQLAlchemy declarative base and session helpers
"""

__version__ = "0.1.0"
