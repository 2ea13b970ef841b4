import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from erp_rbac.errors import DuplicateError, NotFoundError, ValidationError
from erp_rbac.models.authz import UserRoleAssignment
from erp_rbac.services import assignments
from tests.test_utils_seed import ensure_branch, ensure_role


def _rows(session, user_id):
    return session.execute(
        select(func.count(UserRoleAssignment.id)).where(UserRoleAssignment.user_id == user_id)
    ).scalar_one()


def test_assign_twice_is_noop_for_branch_and_global(session):
    role = ensure_role('STORE_KEEPER')
    kl = ensure_branch('KL001')
    a = assignments.assign(session, 'U1', role.id, kl.id)
    b = assignments.assign(session, 'U1', role.id, kl.id)
    assert a == b
    g1 = assignments.assign(session, 'U1', role.id)
    g2 = assignments.assign(session, 'U1', role.id, None)
    assert g1 == g2
    assert g1 != a
    assert _rows(session, 'U1') == 2


def test_strict_assign_raises_duplicate(session):
    role = ensure_role('QC_INSPECTOR')
    assignments.assign(session, 'U2', role.id)
    with pytest.raises(DuplicateError):
        assignments.assign(session, 'U2', role.id, strict=True)


def test_global_uniqueness_enforced_by_storage(session):
    role = ensure_role('SALES_EXECUTIVE')
    session.add(UserRoleAssignment(user_id='U3', role_id=role.id, branch_id=None))
    session.commit()
    session.add(UserRoleAssignment(user_id='U3', role_id=role.id, branch_id=None))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()
    assert _rows(session, 'U3') == 1


def test_assign_validates_references(session):
    role = ensure_role('PRODUCTION_MANAGER')
    with pytest.raises(NotFoundError):
        assignments.assign(session, 'U4', 999)
    with pytest.raises(NotFoundError):
        assignments.assign(session, 'U4', role.id, 999)
    with pytest.raises(ValidationError):
        assignments.assign(session, '', role.id)


def test_revoke_missing_is_noop(session):
    role = ensure_role('QC_INSPECTOR')
    assert assignments.revoke(session, 'nobody', role.id) is False
    assignments.assign(session, 'U5', role.id)
    assert assignments.revoke(session, 'U5', role.id) is True
    assert assignments.revoke(session, 'U5', role.id) is False


def test_revoke_only_touches_matching_scope(session):
    role = ensure_role('BRANCH_MANAGER')
    kl = ensure_branch('KL001')
    assignments.assign(session, 'U6', role.id, kl.id)
    assignments.assign(session, 'U6', role.id)
    assert assignments.revoke(session, 'U6', role.id) is True
    assert assignments.roles_for(session, 'U6', kl.id) == {role.id}
    assert assignments.roles_for(session, 'U6') == set()


def test_roles_for_unions_global_and_branch_roles(session):
    global_role = ensure_role('AUDITOR')
    kl_role = ensure_role('STORE_KEEPER')
    tn_role = ensure_role('QC_INSPECTOR')
    kl, tn = ensure_branch('KL001'), ensure_branch('TN001')
    assignments.assign(session, 'U7', global_role.id)
    assignments.assign(session, 'U7', kl_role.id, kl.id)
    assignments.assign(session, 'U7', tn_role.id, tn.id)
    assert assignments.roles_for(session, 'U7', kl.id) == {global_role.id, kl_role.id}
    assert assignments.roles_for(session, 'U7', tn.id) == {global_role.id, tn_role.id}
    # no branch context: only global roles
    assert assignments.roles_for(session, 'U7') == {global_role.id}


def test_accessible_branches(session):
    role = ensure_role('STORE_KEEPER')
    kl, tn = ensure_branch('KL001'), ensure_branch('TN001')
    assert assignments.accessible_branch_ids(session, 'U8') == []
    assignments.assign(session, 'U8', role.id, tn.id)
    assert assignments.accessible_branch_ids(session, 'U8') == [tn.id]
    assignments.assign(session, 'U8', role.id)
    assert assignments.accessible_branch_ids(session, 'U8') == [kl.id, tn.id]


def test_define_branch_upserts_by_code(session):
    first = assignments.define_branch(session, 'kl001', 'Kochi', city='Kochi')
    second = assignments.define_branch(session, 'KL001', 'Kochi Branch', city='Kochi')
    assert first == second
    branch = assignments.find_branch_by_code(session, 'KL001')
    assert branch.name == 'Kochi Branch'
    with pytest.raises(ValidationError):
        assignments.define_branch(session, ' ', 'Nowhere')


def test_list_assignments_across_users(session):
    keeper, qc = ensure_role('STORE_KEEPER'), ensure_role('QC_INSPECTOR')
    kl, tn = ensure_branch('KL001'), ensure_branch('TN001')
    assignments.assign(session, 'U2', qc.id, tn.id)
    assignments.assign(session, 'U1', keeper.id, kl.id)
    assignments.assign(session, 'U3', qc.id)
    assert [a.user_id for a in assignments.list_assignments(session)] == ['U1', 'U2', 'U3']
    scoped = assignments.list_assignments(session, kl.id)
    assert [(a.user_id, a.role.name) for a in scoped] == [('U1', 'STORE_KEEPER')]
