"""
Hypothesis Property-Based Tests for adminops models.

Uses Hypothesis to generate random valid/invalid inputs and verify:
- Plan limits and command parameter validation
- Default substitution for partial documents
- Deep-merge semantics of the document store
- License key format
"""

from datetime import UTC, datetime

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic import ValidationError

from adminops.db.store import deep_merge
from adminops.models.api import ClearOldLogsParams, CreateLicenseParams, PartialMaintenanceParams
from adminops.models.domain import (
    PLAN_MESSAGE_LIMITS,
    AIConfig,
    LicenseRecord,
    Plan,
    UserRecord,
)
from adminops.services.license_keys import generate_license_key, is_license_key

# ============================================================================
# Hypothesis Strategies - Reusable data generators
# ============================================================================

plans = st.sampled_from(list(Plan))

field_names = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz"), min_size=1, max_size=8
)

json_leaves = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-1000, max_value=1000),
    st.text(max_size=10),
)

json_maps = st.recursive(
    st.dictionaries(field_names, json_leaves, max_size=4),
    lambda children: st.dictionaries(field_names, st.one_of(json_leaves, children), max_size=4),
    max_leaves=12,
)

moments = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(UTC),
)


# ============================================================================
# Plans and users
# ============================================================================


class TestPlanProperties:
    @given(plans)
    def test_limits_increase_with_tier(self, plan):
        """Every plan has a positive limit and paid tiers get more."""
        assert PLAN_MESSAGE_LIMITS[plan] > 0
        assert PLAN_MESSAGE_LIMITS[plan] >= PLAN_MESSAGE_LIMITS[Plan.FREE]

    @given(plans, st.integers(min_value=0, max_value=10_000))
    @settings(max_examples=50)
    def test_user_record_keeps_stored_plan(self, plan, used):
        user = UserRecord.from_document(
            "u",
            {
                "plan": plan.value,
                "messagesUsed": used,
                "messagesLimit": PLAN_MESSAGE_LIMITS[plan],
            },
        )
        assert user.plan == plan
        assert user.messages_used == used
        assert user.messages_limit == PLAN_MESSAGE_LIMITS[plan]

    @given(st.text(max_size=20).filter(lambda s: s not in {p.value for p in Plan}))
    @settings(max_examples=50)
    def test_unknown_plan_reads_as_free(self, value):
        assert UserRecord.from_document("u", {"plan": value}).plan == Plan.FREE


# ============================================================================
# Licenses
# ============================================================================


class TestLicenseProperties:
    @given(moments)
    @settings(max_examples=100)
    def test_generated_keys_match_format(self, now):
        assert is_license_key(generate_license_key(now))

    @given(json_leaves)
    def test_only_explicit_false_is_invalid(self, valid):
        record = LicenseRecord.from_document("k", {"valid": valid})
        assert record.valid is (valid is not False)

    @given(plans, st.integers(min_value=1))
    @settings(max_examples=50)
    def test_positive_validity_accepted(self, plan, days):
        assert CreateLicenseParams(plan=plan, validity_days=days).validity_days == days

    @given(st.integers(max_value=0))
    @settings(max_examples=50)
    def test_non_positive_validity_rejected(self, days):
        with pytest.raises(ValidationError):
            CreateLicenseParams(plan=Plan.FREE, validity_days=days)


# ============================================================================
# Parameters
# ============================================================================


class TestParameterProperties:
    @given(st.integers(min_value=1, max_value=100_000))
    def test_positive_days_accepted(self, days):
        assert ClearOldLogsParams(days_old=days).days_old == days

    @given(st.lists(st.text(max_size=10), min_size=1, max_size=10))
    @settings(max_examples=100)
    def test_partial_services_are_clean_and_unique(self, services):
        cleaned_input = [s.strip() for s in services if s.strip()]
        if not cleaned_input:
            with pytest.raises(ValidationError):
                PartialMaintenanceParams(services=services)
            return

        params = PartialMaintenanceParams(services=services)
        assert len(params.services) == len(set(params.services))
        assert all(s == s.strip() and s for s in params.services)
        assert set(params.services) == set(cleaned_input)

    @given(
        st.fixed_dictionaries(
            {},
            optional={
                "model": st.text(min_size=1, max_size=20),
                "temperature": st.floats(min_value=0, max_value=2),
                "maxTokens": st.integers(min_value=1, max_value=100_000),
                "systemPrompt": st.text(max_size=50),
            },
        )
    )
    @settings(max_examples=100)
    def test_ai_config_fills_only_missing_fields(self, data):
        config = AIConfig.from_document(data)
        defaults = AIConfig()
        stored = config.to_document()
        for key, default in defaults.to_document().items():
            assert stored[key] == data.get(key, default)


# ============================================================================
# Store merge semantics
# ============================================================================


class TestDeepMergeProperties:
    @given(json_maps, json_maps)
    @settings(max_examples=200)
    def test_updates_win_and_untouched_keys_survive(self, base, updates):
        merged = deep_merge(base, updates)

        for key, value in base.items():
            if key not in updates:
                assert merged[key] == value

        for key, value in updates.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                assert deep_merge(base[key], value) == merged[key]
            else:
                assert merged[key] == value

    @given(json_maps)
    def test_merge_with_empty_is_identity(self, base):
        assert deep_merge(base, {}) == base
