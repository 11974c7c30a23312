#!/usr/bin/env python3
"""Generate test JWT tokens for API testing.

Usage:
    python scripts/generate_test_token.py <tenant_id>
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from campaign_core.core.auth import create_access_token

tenant_id = sys.argv[1] if len(sys.argv) > 1 else "demo-tenant"

# HR manager token
manager_token = create_access_token("hr-manager-test", roles=["hr_manager"], tenant_id=tenant_id)
print(f"HR Manager Token:\n{manager_token}\n")

# Employee token
employee_token = create_access_token("employee-test", roles=["employee"], tenant_id=tenant_id)
print(f"Employee Token:\n{employee_token}")
