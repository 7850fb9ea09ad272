"""Store helpers shared by the store, tactical and API tests."""

import asyncio

from fleetrank.catalog import load_catalog
from fleetrank.config import DEFAULT_CATALOG_FILE
from fleetrank.store import SQLiteStore


async def open_store(path) -> SQLiteStore:
    """Open a fresh store seeded with the packaged catalog."""
    store = SQLiteStore(str(path))
    await store.initialize(load_catalog(DEFAULT_CATALOG_FILE))
    return store


async def seed_fleet(store: SQLiteStore) -> dict:
    """Populate a small but realistic community.

    - alice: donor with $50 + $150 pledges to the active campaign
    - bob: forum member, no pledges
    - carol: super admin, no pledges
    - lee: platform team member (by e-mail), no pledges
    - dave: unlinked donor with a $20 pledge to the inactive campaign
    """
    ids = {}
    ids["alice"] = await store.add_user("alice@example.com", "Alice")
    ids["bob"] = await store.add_user("bob@example.com", "Bob")
    ids["carol"] = await store.add_user("carol@example.com", "Carol")
    ids["lee"] = await store.add_user("Lee@Axanar.com", "Lee")
    await store.set_admin(ids["carol"], is_super_admin=True)

    ids["axanar"] = await store.add_campaign("axanar", "Axanar", goal_amount=100000)
    ids["prelude"] = await store.add_campaign("prelude", "Prelude", goal_amount=10000, active=False)

    ids["alice_donor"] = await store.add_donor("alice@example.com", "Alice A.", ids["alice"])
    ids["dave_donor"] = await store.add_donor("dave@example.com", "Dave D.")
    ids["pledge_50"] = await store.add_pledge(ids["alice_donor"], ids["axanar"], 50)
    ids["pledge_150"] = await store.add_pledge(ids["alice_donor"], ids["axanar"], 150)
    ids["pledge_20"] = await store.add_pledge(ids["dave_donor"], ids["prelude"], 20)
    return ids


def run_with_store(path, test_fn):
    """Run ``test_fn(store, ids)`` against a seeded store in a fresh event loop."""
    async def _test():
        store = await open_store(path)
        try:
            ids = await seed_fleet(store)
            return await test_fn(store, ids)
        finally:
            await store.close()

    return asyncio.run(_test())


def seed_file(path) -> dict:
    """Seed a database file and close it again; returns the seeded ids."""
    async def _seed():
        store = await open_store(path)
        try:
            return await seed_fleet(store)
        finally:
            await store.close()

    return asyncio.run(_seed())
