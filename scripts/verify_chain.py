# scripts/verify_chain.py

import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import asyncio

from agrotrace.audit.chain_lock import LocalChainLock
from agrotrace.audit.recorder import AuditRecorder
from agrotrace.config.settings import get_settings
from agrotrace.infrastructure.database.audit_repository_db import DbAuditEventRepository
from agrotrace.infrastructure.database.session import dispose_engine, get_sessionmaker


async def verify(tenant_id: int | None) -> bool:
    settings = get_settings()
    recorder = AuditRecorder(
        DbAuditEventRepository(get_sessionmaker()),
        LocalChainLock(),
        chain_scope=settings.audit_chain_scope,
        chain_mode=settings.audit_chain_mode,
        hash_algorithm=settings.audit_hash_algorithm,
    )
    try:
        result = await recorder.verify_chain(tenant_id)
    finally:
        await dispose_engine()

    print("Scope:", result.scope_key)
    print("Checked events:", result.checked_events)
    if result.valid:
        print("Chain intact")
    else:
        print("Chain BROKEN at event", result.broken_event_id, f"({result.reason})")
    return result.valid


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Verify an audit hash chain in the configured database.")
    parser.add_argument("tenant_id", nargs="?", type=int, help="tenant id; omit for system events")
    args = parser.parse_args()
    sys.exit(0 if asyncio.run(verify(args.tenant_id)) else 1)
