"""Services Layer - async orchestration of the core over the database and chat transport.

Invariants:
    - Services receive an AsyncSession (or a session factory) by injection
    - Domain errors propagate to the API handlers; only best-effort delivery is caught here

Design Decisions:
    - One service per concern (ledger, admin, audit, announcement, materializer) for locality
"""
