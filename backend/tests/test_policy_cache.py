from erp_rbac.services import assignments, catalog, roles
from erp_rbac.services.cache import DecisionCache, decision_cache, mark_user_dirty
from erp_rbac.services.policy import check, DenyReason
from tests.test_utils_seed import ensure_branch, ensure_permissions, seed_user_with_role


def test_decisions_are_cached_per_user_and_branch(session):
    kl = ensure_branch('KL001')
    seed_user_with_role('U1', 'STORE_KEEPER', ['INVENTORY.READ.STOCK_TRANSACTION'], kl)
    assert len(decision_cache) == 0
    check(session, 'U1', kl.id, 'INVENTORY', 'READ', 'STOCK_TRANSACTION')
    check(session, 'U1', kl.id, 'INVENTORY', 'CREATE', 'STOCK_TRANSACTION')
    assert len(decision_cache) == 1
    check(session, 'U1', None, 'INVENTORY', 'READ', 'STOCK_TRANSACTION')
    assert len(decision_cache) == 2
    assert decision_cache.get('U1', kl.id) is not None


def test_assignment_revoke_invalidates_cached_allow(session):
    kl = ensure_branch('KL001')
    role = seed_user_with_role('U2', 'QC_INSPECTOR', ['QC.APPROVE.INSPECTION'], kl)
    assert check(session, 'U2', kl.id, 'QC', 'APPROVE', 'INSPECTION').allowed
    assignments.revoke(session, 'U2', role.id, kl.id)
    assert decision_cache.get('U2', kl.id) is None
    assert check(session, 'U2', kl.id, 'QC', 'APPROVE', 'INSPECTION').reason is DenyReason.NO_ROLE_ASSIGNED


def test_new_assignment_visible_immediately(session):
    kl = ensure_branch('KL001')
    ensure_permissions(['SALES.READ.LEAD'])
    assert not check(session, 'U3', kl.id, 'SALES', 'READ', 'LEAD').allowed
    role = seed_user_with_role('U3', 'SALES_EXECUTIVE', ['SALES.READ.LEAD'])
    assert check(session, 'U3', kl.id, 'SALES', 'READ', 'LEAD').allowed
    assert role.id in decision_cache.get('U3', kl.id)[0]


def test_role_permission_revoke_invalidates_every_holder(session):
    role = seed_user_with_role('U4', 'FINANCE_VIEW', ['FINANCE.READ.REPORTS'])
    assignments.assign(session, 'U5', role.id)
    assert check(session, 'U4', None, 'FINANCE', 'READ', 'REPORTS').allowed
    assert check(session, 'U5', None, 'FINANCE', 'READ', 'REPORTS').allowed
    perm = catalog.find(session, 'FINANCE', 'READ', 'REPORTS')
    roles.revoke_permission(session, role.id, perm.id)
    assert len(decision_cache) == 0
    assert not check(session, 'U4', None, 'FINANCE', 'READ', 'REPORTS').allowed
    assert not check(session, 'U5', None, 'FINANCE', 'READ', 'REPORTS').allowed


def test_rolled_back_mutation_still_drops_entries(session):
    role = seed_user_with_role('U6', 'HR_VIEW', ['HR.READ.EMPLOYEE'])
    assert check(session, 'U6', None, 'HR', 'READ', 'EMPLOYEE').allowed
    assignments.revoke(session, 'U6', role.id, commit=False)
    session.rollback()
    assert decision_cache.get('U6', None) is None
    # rollback restored the assignment
    assert check(session, 'U6', None, 'HR', 'READ', 'EMPLOYEE').allowed


def test_stale_reader_does_not_store():
    cache = DecisionCache()
    generation = cache.generation
    cache.invalidate_user('U7')
    assert cache.put('U7', None, (frozenset({1}), frozenset()), generation) is False
    assert cache.get('U7', None) is None
    assert cache.put('U7', None, (frozenset({1}), frozenset()), cache.generation) is True


def test_disabled_cache_never_stores(session):
    decision_cache.enabled = False
    seed_user_with_role('U8', 'VIEWER', ['HR.READ.EMPLOYEE'])
    assert check(session, 'U8', None, 'HR', 'READ', 'EMPLOYEE').allowed
    assert len(decision_cache) == 0


def test_mark_user_dirty_only_drops_that_user(session):
    decision_cache.put('A', None, (frozenset(), frozenset()), decision_cache.generation)
    decision_cache.put('B', 3, (frozenset(), frozenset()), decision_cache.generation)
    mark_user_dirty(session, 'A')
    assert decision_cache.get('A', None) is None
    assert decision_cache.get('B', 3) is not None


def test_padded_user_id_shares_cache_entry_with_revocation(session):
    role = seed_user_with_role('U9', 'HR_VIEW', ['HR.READ.EMPLOYEE'])
    assert check(session, ' U9 ', None, 'HR', 'READ', 'EMPLOYEE').allowed
    assert decision_cache.get('U9', None) is not None
    assert decision_cache.get(' U9 ', None) is None
    assignments.revoke(session, 'U9', role.id)
    assert not check(session, ' U9', None, 'HR', 'READ', 'EMPLOYEE').allowed
    assert not check(session, 'U9', None, 'HR', 'READ', 'EMPLOYEE').allowed
