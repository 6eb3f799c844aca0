"""
Create the default permission catalog, roles, hierarchy and groups.

Safe to re-run: anything already present is left untouched.

    python scripts/seed_rbac.py
"""
import asyncio
import os
import sys

# Ensure we can import pharmhub_authz
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def main():
    from pharmhub_authz.config import get_settings
    from pharmhub_authz.database import async_session_maker, close_db, init_db
    from pharmhub_authz.kernel.permissions.seed import seed_defaults
    from pharmhub_authz.logging_config import configure_logging

    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    await init_db()
    try:
        async with async_session_maker() as session:
            report = await seed_defaults(session)
    finally:
        await close_db()

    print(f"Permissions created: {len(report.permissions)}")
    print(f"Roles created:       {len(report.roles)}")
    print(f"Hierarchy edges:     {', '.join(report.edges) or '(none new)'}")
    print(f"Groups created:      {', '.join(report.groups) or '(none new)'}")


if __name__ == "__main__":
    asyncio.run(main())
