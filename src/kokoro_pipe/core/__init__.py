"""
Core Infrastructure for kokoro-pipe.

This package provides foundational components:
    - config.py: Settings loading and validation
    - errors.py: KokoroError hierarchy with stable error codes
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
