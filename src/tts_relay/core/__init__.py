"""
Core infrastructure for tts-relay.

    - config.py: Settings loading and validation
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics
"""
