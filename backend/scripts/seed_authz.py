#!/usr/bin/env python
"""Idempotent seed script for the steel-ERP permission catalog, roles, branches and bootstrap admin.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --with-demo   # also assign the demo users at KL001
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from flask import current_app, has_app_context  # noqa: E402
from sqlalchemy import inspect  # noqa: E402

from erp_rbac import create_app, get_db  # noqa: E402
from erp_rbac.services.seed import seed_defaults, role_permission_map, role_checksum, validate_catalog  # noqa: E402


def print_role_summary(mapping):
    if not mapping:
        print("[INFO] No roles present.")
        return
    name_w = max(len(name) for name in mapping)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name in sorted(mapping):
        codes = mapping[name]
        print(f"{name.ljust(name_w)} | {str(len(codes)).rjust(5)} | {', '.join(codes[:8])}")


def export_payload(mapping, dry_run: bool):
    return {
        'roles': mapping,
        'meta': {
            'permissions_total': sum(len(v) for v in mapping.values()),
            'distinct_permissions': len({p for plist in mapping.values() for p in plist}),
            'roles_checksum_sha256': role_checksum(mapping),
            'role_names_sorted': sorted(mapping.keys()),
            'dry_run': dry_run,
        }
    }


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles, branches & bootstrap assignments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate stored permission triples; exits non-zero on problems')
    p.add_argument('--fail-if-changed', metavar='CHECKSUM', help='Exit 4 if computed roles checksum differs from provided value')
    p.add_argument('--admin-user', default=None, help='User id receiving the global SUPER_ADMIN role (default: AUTHZ_SEED_ADMIN_USER)')
    p.add_argument('--with-demo', action='store_true', help='Also assign the demo users to their KL001 roles')
    return p.parse_args(argv)


def run(args, app) -> int:
    """Seed inside the current app context, or inside a fresh one for ``app``."""
    if has_app_context():
        return _run(args, current_app)
    with app.app_context():
        return _run(args, app)


def _run(args, app) -> int:
    session = get_db()
    engine = session.get_bind()
    if not inspect(engine).has_table('permissions'):
        # Auto-create schema for bootstrap; in real env prefer alembic upgrade
        from erp_rbac.models.authz import Base
        from erp_rbac.models import audit  # noqa: F401
        Base.metadata.create_all(engine)

    admin_user = args.admin_user or app.config.get('AUTHZ_SEED_ADMIN_USER')
    try:
        report = seed_defaults(session, admin_user_id=admin_user, include_demo=args.with_demo, commit=False)
        mapping = role_permission_map(session)
        for role_name, code in report.skipped_grants:
            print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
        if args.validate:
            problems = validate_catalog(session)
            if problems:
                print('\n[VALIDATION] FAIL:')
                for problem in problems:
                    print(' -', problem)
                session.rollback()
                return 2
            print('[VALIDATION] OK: All permission triples valid.')
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) Permissions would create: {report.permissions_created}, "
                  f"Roles would create: {report.roles_created}, Grants would create: {report.grants_created}")
        else:
            session.commit()
            print(f"[DONE] Permissions created: {report.permissions_created}, Roles created: {report.roles_created}, "
                  f"Grants created: {report.grants_created}, Assignments created: {report.assignments_created}")
        if args.show_roles:
            print('\nRole Permission Summary:')
            print_role_summary(mapping)

        checksum = role_checksum(mapping)
        if args.fail_if_changed:
            if checksum != args.fail_if_changed:
                print(f"[CHECKSUM] MISMATCH: expected {args.fail_if_changed} got {checksum}")
                return 4
            print(f"[CHECKSUM] OK: {checksum}")

        if args.export_json is not None:
            payload = export_payload(mapping, args.dry_run)
            if args.export_json == '-':
                print(json.dumps(payload, indent=2, sort_keys=True))
            else:
                with open(args.export_json, 'w', encoding='utf-8') as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                print(f"[INFO] Exported JSON to {args.export_json}")
    except Exception:
        session.rollback()
        raise
    return 0


def main(argv=None):
    args = parse_args(argv)
    sys.exit(run(args, create_app()))

if __name__ == '__main__':
    main()
