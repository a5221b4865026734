"""
Seed script to populate the system roles and their default policies.

Run this script after database initialization to create:
- The system roles (tech_admin, customer_admin, ...)
- Their portal bindings and the tech role hierarchy
- One allow policy per role permission

Policies are only written into an empty policy store. Pass ``--rebuild`` to
re-save the whole policy set afterwards (rewrites ``casbin_rule`` from the
loaded policies).

Usage:
    uv run python -m scripts.seed_policies
"""
import asyncio
import sys

from erp_access.core.database.engine import engine, get_db, init_db
from erp_access.features.access.enforcer import create_enforcer
from erp_access.features.access.seed import DEFAULT_ROLES, seed_defaults
from erp_access.features.access.store import PolicyStore
from erp_access.utils import get_logger


log = get_logger(__name__)


async def main(rebuild: bool = False):
    """Main function to seed roles and policies."""
    log.info("Starting policy seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    enforcer = create_enforcer(engine)

    # Get database session
    async for db in get_db():
        try:
            await seed_defaults(db, enforcer, PolicyStore())
        except Exception as e:
            log.error(f"Error seeding policies: {e}", exc_info=True)
            await db.rollback()
            raise
        break  # Only use first session

    if rebuild:
        await enforcer.save_policy()
        log.info("Policy set re-saved")

    log.info("Policy seeding completed successfully!")
    log.info("")
    log.info("System roles:")
    for role in DEFAULT_ROLES:
        log.info(f"  - {role.key}: {len(role.permissions)} permissions")


if __name__ == "__main__":
    asyncio.run(main(rebuild="--rebuild" in sys.argv[1:]))
