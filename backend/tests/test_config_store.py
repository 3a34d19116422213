"""Tests for the referral program config store."""

import pytest

from creditwise.exceptions import ReferralConfigUnavailableError
from creditwise.referral.config import REFERRAL_DEFAULTS, ReferralConfigStore, ReferralConfigUpdate
from creditwise.referral.models import CONFIG_ROW_ID, ReferralConfig


def _count_rows(database) -> int:
    with database.session() as session:
        return session.query(ReferralConfig).count()


def test_empty_table_returns_defaults(database):
    config = ReferralConfigStore(database).get_config()

    assert config.id == CONFIG_ROW_ID
    assert config.credits_per_referral == 15
    assert config.credits_for_referred == 15
    assert config.max_referrals_per_user is None
    assert config.is_active is True
    assert config.require_subscription is False


def test_second_read_returns_same_row(database):
    store = ReferralConfigStore(database)
    first = store.get_config()
    second = store.get_config()

    assert first.id == second.id
    assert _count_rows(database) == 1


def test_existing_row_is_not_overwritten(database):
    with database.session() as session:
        session.add(ReferralConfig(id=CONFIG_ROW_ID, **{**REFERRAL_DEFAULTS, "credits_per_referral": 40}))

    assert ReferralConfigStore(database).get_config().credits_per_referral == 40


def test_lost_insert_race_falls_back_to_reread(database, monkeypatch):
    with database.session() as session:
        session.add(ReferralConfig(id=CONFIG_ROW_ID, **{**REFERRAL_DEFAULTS, "credits_for_referred": 7}))

    store = ReferralConfigStore(database)
    real_read = store._read
    calls = []

    def first_read_misses():
        calls.append(1)
        return None if len(calls) == 1 else real_read()

    monkeypatch.setattr(store, "_read", first_read_misses)

    config = store.get_config()

    assert config.credits_for_referred == 7
    assert _count_rows(database) == 1


def test_unavailable_when_insert_and_reread_fail(database, monkeypatch):
    with database.session() as session:
        session.add(ReferralConfig(id=CONFIG_ROW_ID, **REFERRAL_DEFAULTS))

    store = ReferralConfigStore(database)
    monkeypatch.setattr(store, "_read", lambda: None)

    with pytest.raises(ReferralConfigUnavailableError):
        store.get_config()


class TestUpdateConfig:
    def test_partial_update(self, database):
        store = ReferralConfigStore(database)
        config = store.update_config(ReferralConfigUpdate(credits_per_referral=25, is_active=False))

        assert config.credits_per_referral == 25
        assert config.credits_for_referred == 15
        assert config.is_active is False
        assert store.get_config().credits_per_referral == 25

    def test_cap_can_be_set_and_cleared(self, database):
        store = ReferralConfigStore(database)
        assert store.update_config(ReferralConfigUpdate(max_referrals_per_user=3)).max_referrals_per_user == 3

        cleared = store.update_config(ReferralConfigUpdate(max_referrals_per_user=None))
        assert cleared.max_referrals_per_user is None

    def test_unset_fields_are_left_alone(self, database):
        store = ReferralConfigStore(database)
        store.update_config(ReferralConfigUpdate(max_referrals_per_user=3))

        config = store.update_config(ReferralConfigUpdate(credits_for_referred=5))

        assert config.max_referrals_per_user == 3

    def test_negative_credits_rejected(self):
        with pytest.raises(ValueError):
            ReferralConfigUpdate(credits_per_referral=-1)
