"""Create a tenant and bind its admin chat identities.

Usage:
    python -m scripts.create_tenant "Tuesday Volleyball" 123456789 987654321

Invariants:
    - A chat identity administers at most one tenant; an already-bound identity aborts
      the whole run before anything is written
"""

import argparse
import asyncio
import logging

from sqlalchemy import select

from rollcall.config import get_settings
from rollcall.infrastructure.database import DatabaseSessionManager
from rollcall.infrastructure.observability import setup_logging
from rollcall.models.tenant import Tenant, TenantMember

logger = logging.getLogger(__name__)


async def create_tenant(database_url: str, name: str, admin_ids: list[str]) -> Tenant:
    manager = DatabaseSessionManager(database_url)
    try:
        async with manager.session() as db:
            taken = await db.execute(
                select(TenantMember.actor_id).where(TenantMember.actor_id.in_(admin_ids)),
            )
            already_bound = list(taken.scalars().all())
            if already_bound:
                raise SystemExit(f"Already bound to a tenant: {', '.join(already_bound)}")

            tenant = Tenant(name=name)
            db.add(tenant)
            await db.flush()
            for actor_id in admin_ids:
                db.add(TenantMember(tenant_id=tenant.id, actor_id=actor_id))
            await db.commit()
    finally:
        await manager.dispose()

    logger.info(f"Tenant '{name}' created with {len(admin_ids)} admin(s)", extra={"tenant_id": tenant.id})
    return tenant


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("name", help="Tenant display name")
    parser.add_argument("admin_ids", nargs="+", help="Chat user ids of the tenant admins")
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level, "text")
    tenant = asyncio.run(create_tenant(settings.database_url, args.name, args.admin_ids))
    print(tenant.id)


if __name__ == "__main__":
    main()
