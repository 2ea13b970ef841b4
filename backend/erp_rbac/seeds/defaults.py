"""Default steel-ERP authorization data: catalog, system roles, branches and bootstrap users.

Role compositions are derived from the business catalog with the same filters
the ERP has always shipped, so adding a permission to a module extends the
matching roles automatically.
"""
from __future__ import annotations
from typing import Callable, List, Tuple

from erp_rbac.constants.permissions import (
    WILDCARD, RBAC_PERMISSIONS, RBAC_ROLES, RBAC_USER_ROLES, RBAC_USER_PERMISSIONS, RBAC_USERS, SUPER_ADMIN_ROLE,
)
from erp_rbac.services.seed import AssignmentDef, BranchDef, PermissionDef, RoleDef

BUSINESS_PERMISSIONS: Tuple[PermissionDef, ...] = (
    # Manufacturing
    PermissionDef('MANUFACTURING', 'CREATE', 'PRODUCTION_ORDER', 'Create production orders'),
    PermissionDef('MANUFACTURING', 'READ', 'PRODUCTION_ORDER', 'View production orders'),
    PermissionDef('MANUFACTURING', 'UPDATE', 'PRODUCTION_ORDER', 'Update production orders'),
    PermissionDef('MANUFACTURING', 'DELETE', 'PRODUCTION_ORDER', 'Delete production orders'),
    PermissionDef('MANUFACTURING', 'APPROVE', 'BOM', 'Approve BOM changes'),
    # Sales
    PermissionDef('SALES', 'CREATE', 'LEAD', 'Create leads'),
    PermissionDef('SALES', 'READ', 'LEAD', 'View leads'),
    PermissionDef('SALES', 'UPDATE', 'LEAD', 'Update leads'),
    PermissionDef('SALES', 'CREATE', 'SALES_ORDER', 'Create sales orders'),
    PermissionDef('SALES', 'APPROVE', 'DISCOUNT', 'Approve discounts'),
    # Inventory
    PermissionDef('INVENTORY', 'CREATE', 'STOCK_TRANSACTION', 'Create stock transactions'),
    PermissionDef('INVENTORY', 'READ', 'STOCK_TRANSACTION', 'View stock transactions'),
    PermissionDef('INVENTORY', 'UPDATE', 'STOCK_TRANSACTION', 'Update stock transactions'),
    PermissionDef('INVENTORY', 'APPROVE', 'STOCK_ADJUSTMENT', 'Approve stock adjustments'),
    # Procurement
    PermissionDef('PROCUREMENT', 'CREATE', 'PURCHASE_ORDER', 'Create purchase orders'),
    PermissionDef('PROCUREMENT', 'APPROVE', 'PURCHASE_ORDER', 'Approve purchase orders'),
    PermissionDef('PROCUREMENT', 'CREATE', 'GRN', 'Create goods receipt notes'),
    # QC
    PermissionDef('QC', 'CREATE', 'INSPECTION', 'Create QC inspections'),
    PermissionDef('QC', 'APPROVE', 'INSPECTION', 'Approve QC inspections'),
    # Service
    PermissionDef('SERVICE', 'CREATE', 'SERVICE_REQUEST', 'Create service requests'),
    PermissionDef('SERVICE', 'ASSIGN', 'TECHNICIAN', 'Assign technicians'),
    # Finance
    PermissionDef('FINANCE', 'READ', 'REPORTS', 'View financial reports'),
    PermissionDef('FINANCE', 'CREATE', 'INVOICE', 'Create invoices'),
    # HR
    PermissionDef('HR', 'READ', 'EMPLOYEE', 'View employee data'),
    PermissionDef('HR', 'UPDATE', 'PAYROLL', 'Update payroll'),
    # Admin
    PermissionDef('ADMIN', 'CREATE', 'USER', 'Create users'),
    PermissionDef('ADMIN', 'UPDATE', 'ROLE', 'Update roles'),
    PermissionDef('ADMIN', 'READ', 'AUDIT_LOG', 'View audit logs'),
)

# Guards of the /iam administration API.
RBAC_ADMIN_PERMISSIONS: Tuple[PermissionDef, ...] = (
    PermissionDef('RBAC', 'READ', RBAC_PERMISSIONS, 'View the permission catalog'),
    PermissionDef('RBAC', 'CREATE', RBAC_PERMISSIONS, 'Add catalog permissions'),
    PermissionDef('RBAC', 'DELETE', RBAC_PERMISSIONS, 'Remove unused catalog permissions'),
    PermissionDef('RBAC', 'READ', RBAC_ROLES, 'View roles'),
    PermissionDef('RBAC', 'CREATE', RBAC_ROLES, 'Create roles'),
    PermissionDef('RBAC', 'UPDATE', RBAC_ROLES, 'Edit roles and their permissions'),
    PermissionDef('RBAC', 'DELETE', RBAC_ROLES, 'Delete custom roles'),
    PermissionDef('RBAC', 'CREATE', RBAC_USER_ROLES, 'Assign roles to users'),
    PermissionDef('RBAC', 'DELETE', RBAC_USER_ROLES, 'Revoke roles from users'),
    PermissionDef('RBAC', 'READ', RBAC_USER_PERMISSIONS, 'View and check user permissions'),
    PermissionDef('RBAC', 'READ', RBAC_USERS, 'List users with their role assignments'),
)


def _wildcard_rows() -> Tuple[PermissionDef, ...]:
    modules = []
    for perm in BUSINESS_PERMISSIONS + RBAC_ADMIN_PERMISSIONS:
        if perm.module not in modules:
            modules.append(perm.module)
    rows = [PermissionDef(m, WILDCARD, WILDCARD, f'All {m} permissions') for m in modules]
    rows.append(PermissionDef(WILDCARD, WILDCARD, WILDCARD, 'All permissions (superuser)'))
    return tuple(rows)


WILDCARD_PERMISSIONS = _wildcard_rows()

DEFAULT_PERMISSIONS: Tuple[PermissionDef, ...] = BUSINESS_PERMISSIONS + RBAC_ADMIN_PERMISSIONS + WILDCARD_PERMISSIONS


def _codes(keep: Callable[[PermissionDef], bool]) -> Tuple[str, ...]:
    return tuple(p.code for p in BUSINESS_PERMISSIONS if keep(p))


DEFAULT_ROLES: Tuple[RoleDef, ...] = (
    RoleDef(SUPER_ADMIN_ROLE, 'Super Administrator with full system access', True, (WILDCARD,)),
    RoleDef('BRANCH_MANAGER', 'Branch Manager with branch-level access', True,
            _codes(lambda p: p.module != 'ADMIN' or p.action == 'READ')),
    RoleDef('PRODUCTION_MANAGER', 'Production Manager with manufacturing access', True,
            _codes(lambda p: p.module in ('MANUFACTURING', 'INVENTORY', 'QC'))),
    RoleDef('SALES_EXECUTIVE', 'Sales Executive with sales and customer access', True,
            _codes(lambda p: p.module in ('SALES', 'SERVICE') and p.action != 'APPROVE')),
    RoleDef('STORE_KEEPER', 'Store Keeper with inventory access', True,
            _codes(lambda p: p.module == 'INVENTORY' and p.action != 'APPROVE')),
    RoleDef('QC_INSPECTOR', 'Quality Control Inspector', True,
            _codes(lambda p: p.module == 'QC')),
)

DEFAULT_BRANCHES: Tuple[BranchDef, ...] = (
    BranchDef('KL001', 'Kochi Branch', address='Industrial Area, Kochi', city='Kochi', state='Kerala',
              pincode='682001', phone='+91-484-1234567', email='kochi@steel-erp.com',
              gst_number='32ABCDE1234F1Z5'),
    BranchDef('TN001', 'Chennai Branch', address='Industrial Estate, Chennai', city='Chennai',
              state='Tamil Nadu', pincode='600001', phone='+91-44-1234567', email='chennai@steel-erp.com',
              gst_number='33ABCDE1234F1Z5'),
)

# Demo users for local environments; ids are usernames in the identity service.
DEMO_ASSIGNMENTS: List[AssignmentDef] = [
    AssignmentDef('manager_kerala', 'BRANCH_MANAGER', 'KL001'),
    AssignmentDef('production_mgr', 'PRODUCTION_MANAGER', 'KL001'),
    AssignmentDef('sales_exec', 'SALES_EXECUTIVE', 'KL001'),
    AssignmentDef('qc_inspector', 'QC_INSPECTOR', 'KL001'),
    AssignmentDef('service_tech', 'SALES_EXECUTIVE', 'KL001'),
    AssignmentDef('test_employee', 'STORE_KEEPER', 'KL001'),
]


def admin_assignment(user_id: str) -> AssignmentDef:
    return AssignmentDef(user_id, SUPER_ADMIN_ROLE, None)
