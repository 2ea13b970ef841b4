"""Central enum-like definitions to avoid typos in module/action strings.
Extend cautiously; never rename codes silently. Add new ones and retire old ones through a migration.
"""
from __future__ import annotations
from typing import List

# Sentinel stored in a permission column meaning "any value".
WILDCARD = '*'

MODULES: List[str] = [
    'MANUFACTURING', 'SALES', 'INVENTORY', 'PROCUREMENT', 'QC',
    'SERVICE', 'FINANCE', 'HR', 'ADMIN', 'RBAC',
]

ACTIONS: List[str] = ['CREATE', 'READ', 'UPDATE', 'DELETE', 'APPROVE', 'ASSIGN']

# Resources the admin API itself is guarded by.
RBAC_PERMISSIONS = 'PERMISSIONS'
RBAC_ROLES = 'ROLES'
RBAC_USER_ROLES = 'USER_ROLES'
RBAC_USER_PERMISSIONS = 'USER_PERMISSIONS'
RBAC_USERS = 'USERS'

SUPER_ADMIN_ROLE = 'SUPER_ADMIN'

# Header carrying the branch a request acts within.
BRANCH_HEADER = 'X-Branch-Id'
