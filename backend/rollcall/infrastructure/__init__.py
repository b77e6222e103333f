"""Infrastructure Layer - external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure holds no domain rules; it moves bytes and maps failures
    - All external calls wrapped with retry/timeout/error mapping
"""
