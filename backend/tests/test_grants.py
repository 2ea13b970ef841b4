import pytest
from erp_rbac.errors import ValidationError
from erp_rbac.services.grants import (
    ExactGrant, ActionWildcard, ModuleWildcard, GlobalWildcard,
    grant_for, parse_grant_code, best_match, format_code, normalize_part,
)


def test_parse_codes_into_variants():
    assert parse_grant_code('*') == GlobalWildcard()
    assert parse_grant_code('PRODUCTION.*') == ModuleWildcard('PRODUCTION')
    assert parse_grant_code('sales.read.*') == ActionWildcard('SALES', 'READ')
    assert parse_grant_code('SALES.READ.LEAD') == ExactGrant('SALES', 'READ', 'LEAD')
    assert parse_grant_code('FINANCE.READ') == ExactGrant('FINANCE', 'READ', '')


@pytest.mark.parametrize('code', ['', 'SALES', '.READ', 'SALES..LEAD', '*.READ.LEAD', 'SALES.*.LEAD', 'SALES.RE*'])
def test_illegal_codes_rejected(code):
    with pytest.raises(ValidationError):
        parse_grant_code(code)


def test_grant_for_normalizes_and_checks_shape():
    assert grant_for(' inventory ', 'create', None) == ExactGrant('INVENTORY', 'CREATE', '')
    assert grant_for('*', '*', '*') == GlobalWildcard()
    assert grant_for('QC', '*', '') == ModuleWildcard('QC')
    with pytest.raises(ValidationError):
        grant_for('', 'READ', 'LEAD')
    with pytest.raises(ValidationError):
        grant_for('SALES', '', 'LEAD')
    with pytest.raises(ValidationError):
        grant_for('*', 'READ', 'LEAD')


def test_codes_round_trip_through_triples():
    for code in ['*', 'PRODUCTION.*', 'SALES.READ.*', 'SALES.READ.LEAD', 'FINANCE.READ']:
        assert parse_grant_code(code).code == code
    assert format_code('HR', 'READ', '') == 'HR.READ'
    assert normalize_part(None) == ''


def test_module_wildcard_coverage():
    grant = ModuleWildcard('PRODUCTION')
    assert grant.covers('PRODUCTION', 'CREATE', 'PRODUCTION_ORDER')
    assert grant.covers('PRODUCTION', 'READ', 'ANYTHING')
    assert not grant.covers('SALES', 'READ', 'LEAD')


def test_empty_resource_is_exact_not_any():
    grant = ExactGrant('FINANCE', 'READ', '')
    assert grant.covers('FINANCE', 'READ', '')
    assert not grant.covers('FINANCE', 'READ', 'REPORTS')


def test_best_match_prefers_most_specific():
    grants = {GlobalWildcard(), ModuleWildcard('SALES'), ActionWildcard('SALES', 'READ'), ExactGrant('SALES', 'READ', 'LEAD')}
    assert best_match(grants, 'SALES', 'READ', 'LEAD') == ExactGrant('SALES', 'READ', 'LEAD')
    assert best_match(grants, 'SALES', 'READ', 'SALES_ORDER') == ActionWildcard('SALES', 'READ')
    assert best_match(grants, 'SALES', 'APPROVE', 'DISCOUNT') == ModuleWildcard('SALES')
    assert best_match(grants, 'HR', 'READ', 'EMPLOYEE') == GlobalWildcard()
    assert best_match({ExactGrant('QC', 'CREATE', 'INSPECTION')}, 'QC', 'APPROVE', 'INSPECTION') is None
