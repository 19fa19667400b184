"""Tests for the outbound subscription registry."""

from __future__ import annotations

import pytest

from botrelay.delivery.registry import SubscriptionNotFoundError, SubscriptionRegistry, validate_url
from botrelay.models import WebhookEventType


class TestSubscriptionRegistry:
    def test_create_sets_defaults(self) -> None:
        registry = SubscriptionRegistry()
        sub = registry.create("https://example.com/hook", ["agent.update", "agent.error"])

        assert sub.id
        assert sub.is_active is True
        assert sub.events == [WebhookEventType.AGENT_UPDATE, WebhookEventType.AGENT_ERROR]
        assert sub.created_at <= sub.updated_at
        assert len(sub.secret) == 64
        assert registry.get(sub.id) == sub

    def test_duplicate_events_collapsed(self) -> None:
        registry = SubscriptionRegistry()
        sub = registry.create("https://example.com/hook", ["agent.call", "agent.call"])
        assert sub.events == [WebhookEventType.AGENT_CALL]

    def test_secrets_differ_per_subscription(self) -> None:
        registry = SubscriptionRegistry()
        first = registry.create("https://example.com/a", ["agent.call"])
        second = registry.create("https://example.com/b", ["agent.call"])
        assert first.secret != second.secret

    def test_list_in_insertion_order(self) -> None:
        registry = SubscriptionRegistry()
        ids = [registry.create(f"https://example.com/{i}", ["agent.call"]).id for i in range(3)]
        assert [s.id for s in registry.list()] == ids

    def test_delete_existing(self) -> None:
        registry = SubscriptionRegistry()
        sub = registry.create("https://example.com/hook", ["agent.call"])
        assert registry.delete(sub.id) is True
        assert registry.get(sub.id) is None
        assert len(registry) == 0

    def test_delete_missing_leaves_registry_unchanged(self) -> None:
        registry = SubscriptionRegistry()
        sub = registry.create("https://example.com/hook", ["agent.call"])
        assert registry.delete("does-not-exist") is False
        assert registry.list() == [sub]

    def test_matching_filters_event_and_active(self) -> None:
        registry = SubscriptionRegistry()
        updates = registry.create("https://example.com/u", ["agent.update"])
        registry.create("https://example.com/c", ["agent.call"])
        paused = registry.create("https://example.com/p", ["agent.update"])
        registry.set_active(paused.id, False)

        assert [s.id for s in registry.matching("agent.update")] == [updates.id]

    def test_set_active_bumps_updated_at(self) -> None:
        registry = SubscriptionRegistry()
        sub = registry.create("https://example.com/hook", ["agent.call"])
        updated = registry.set_active(sub.id, False)
        assert updated.is_active is False
        assert updated.updated_at >= sub.updated_at
        assert registry.get(sub.id).is_active is False  # type: ignore[union-attr]

    def test_set_active_missing_raises(self) -> None:
        with pytest.raises(SubscriptionNotFoundError):
            SubscriptionRegistry().set_active("nope", True)

    def test_unknown_event_rejected(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionRegistry().create("https://example.com/hook", ["agent.explode"])

    def test_empty_events_rejected(self) -> None:
        with pytest.raises(ValueError):
            SubscriptionRegistry().create("https://example.com/hook", [])

    def test_wire_format_hides_secret(self) -> None:
        sub = SubscriptionRegistry().create("https://example.com/hook", ["agent.call"])
        wire = sub.to_wire()
        assert "secret" not in wire
        assert wire["isActive"] is True
        assert wire["events"] == ["agent.call"]


class TestValidateUrl:
    @pytest.mark.parametrize("url", ["https://example.com/hook", "http://localhost:8080/x"])
    def test_accepts_http_urls(self, url: str) -> None:
        assert validate_url(url) == url

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://example.com/x", "/relative/path"])
    def test_rejects_malformed(self, url: str) -> None:
        with pytest.raises(ValueError):
            validate_url(url)
