"""Tests for realtime models."""

import pytest

from modules.realtime.models import ChangeKind, RealtimeCallbacks, SubscriptionKey


class TestSubscriptionKey:
    def test_filterless_name(self):
        key = SubscriptionKey(table="automations")
        assert key.name == "realtime:automations"
        assert key.filter_expression is None

    def test_filtered_name(self):
        key = SubscriptionKey(table="tasks", filter_column="project_id", filter_value=7)
        assert key.name == "realtime:tasks:project_id:7"
        assert key.filter_expression == "project_id=eq.7"

    def test_non_default_operator_in_name(self):
        key = SubscriptionKey(table="tasks", filter_column="priority", filter_value=3, operator="gt")
        assert key.name == "realtime:tasks:priority:gt:3"
        assert key.filter_expression == "priority=gt.3"

    def test_equal_keys_share_name(self):
        a = SubscriptionKey(table="tasks", filter_column="project_id", filter_value=7)
        b = SubscriptionKey(table="tasks", filter_column="project_id", filter_value=7)
        assert a == b
        assert a.name == b.name

    def test_different_values_differ(self):
        a = SubscriptionKey(table="tasks", filter_column="project_id", filter_value=7)
        b = SubscriptionKey(table="tasks", filter_column="project_id", filter_value=8)
        assert a.name != b.name

    def test_for_organization(self):
        key = SubscriptionKey.for_organization("activity_logs", 5)
        assert key.name == "realtime:activity_logs:organization_id:5"

    def test_requires_table(self):
        with pytest.raises(ValueError):
            SubscriptionKey(table="")

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError):
            SubscriptionKey(table="tasks", filter_column="a", filter_value=1, operator="between")

    def test_requires_column_and_value_together(self):
        with pytest.raises(ValueError):
            SubscriptionKey(table="tasks", filter_column="project_id")
        with pytest.raises(ValueError):
            SubscriptionKey(table="tasks", filter_value=7)


class TestRealtimeCallbacks:
    def test_for_kind(self):
        def on_insert(record):
            return None

        def on_delete(record):
            return None

        callbacks = RealtimeCallbacks(on_insert=on_insert, on_delete=on_delete)

        assert callbacks.for_kind(ChangeKind.INSERT) is on_insert
        assert callbacks.for_kind(ChangeKind.UPDATE) is None
        assert callbacks.for_kind(ChangeKind.DELETE) is on_delete
