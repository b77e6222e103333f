"""ORM Models - SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Tenant owns series; series own instances; instances own ledger rows by reference

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from rollcall.models.tenant import Tenant, TenantMember  # noqa: F401
from rollcall.models.event_series import EventSeries  # noqa: F401
from rollcall.models.event_instance import EventInstance  # noqa: F401
from rollcall.models.participation_record import ParticipationRecord  # noqa: F401
from rollcall.models.audit_record import AuditRecord  # noqa: F401
