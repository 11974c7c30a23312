#!/usr/bin/env python3
"""Verify a deployed campaign core answers on its main endpoints.

Usage:
    CAMPAIGN_CORE_URL=https://... python scripts/verify_deployment.py [tenant_id]
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import requests
from dotenv import load_dotenv

# REQUIRED: Add parent directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from campaign_core.core.auth import create_access_token

load_dotenv()

API_URL = os.getenv("CAMPAIGN_CORE_URL", "http://localhost:8000").rstrip("/")


def check_health() -> bool:
    """Check API health."""
    print("🏥 Checking API health...")
    response = requests.get(f"{API_URL}/health", timeout=10)
    data = response.json()

    if data["status"] == "ok":
        print("✅ API healthy")
        print(f"   - Database: {data['datastores']['database']['status']}")
        print(f"   - Redis: {data['datastores']['redis']['status']}")
        return True
    print("❌ API degraded")
    return False


def check_protected_endpoints() -> None:
    """Campaign routes must refuse anonymous callers."""
    print("\n🔍 Checking authentication...")
    for path in ("/engagement/campaigns", "/assessment/campaigns", "/unified/stats"):
        response = requests.get(f"{API_URL}{path}", timeout=10)
        if response.status_code == 401:
            print(f"✅ GET {path} - needs auth")
        else:
            print(f"⚠️  GET {path} - Status: {response.status_code}")


def check_tenant_reads(tenant_id: str) -> None:
    print(f"\n📅 Reading calendar stats for tenant {tenant_id}...")
    token = create_access_token("deployment-check", roles=["hr_manager"], tenant_id=tenant_id)
    response = requests.get(
        f"{API_URL}/unified/stats",
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    response.raise_for_status()
    totals = response.json()["data"]["totals"]
    print(f"✅ Active campaigns: {totals['active']}, upcoming: {totals['upcoming']}")


def main() -> None:
    """Run deployment verification."""
    print("=" * 60)
    print("  DEPLOYMENT VERIFICATION")
    print("=" * 60)

    try:
        if not check_health():
            print("\n❌ Health check failed - deployment may not be ready")
            sys.exit(1)

        check_protected_endpoints()
        if len(sys.argv) > 1:
            check_tenant_reads(sys.argv[1])

        print("\n" + "=" * 60)
        print("✅ Deployment verification complete!")
        print("=" * 60)
    except requests.RequestException as exc:
        print(f"\n❌ Verification failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
