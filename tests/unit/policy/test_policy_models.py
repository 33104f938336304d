"""Unit tests — Policy and AuditEvent models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from jade_guard.policy.models import (
    AuditAction,
    AuditEvent,
    CapabilityFlag,
    Policy,
    PolicyListing,
)


@pytest.mark.unit
class TestPolicy:
    def test_default_is_all_disabled(self) -> None:
        policy = Policy()
        assert set(policy.capabilities) == set(CapabilityFlag)
        assert not any(policy.capabilities.values())
        assert policy.whitelisted is False
        assert policy.risk_score == 0

    def test_partial_map_fills_missing_flags(self) -> None:
        policy = Policy.model_validate({"capabilities": {"allowNetwork": True}})
        assert policy.capabilities[CapabilityFlag.NETWORK] is True
        assert policy.capabilities[CapabilityFlag.CAMERA] is False
        assert len(policy.capabilities) == len(CapabilityFlag)

    def test_whitelist_overrides_every_flag(self) -> None:
        policy = Policy(whitelisted=True)
        assert all(policy.allows(flag) for flag in CapabilityFlag)

    def test_allows_reads_flag(self) -> None:
        policy = Policy().with_flags(STORAGE=True)
        assert policy.allows(CapabilityFlag.STORAGE)
        assert not policy.allows(CapabilityFlag.NETWORK)

    def test_with_flags_does_not_mutate(self) -> None:
        original = Policy()
        original.with_flags(NETWORK=True)
        assert original.capabilities[CapabilityFlag.NETWORK] is False

    def test_document_uses_wire_names(self) -> None:
        doc = Policy(risk_score=10).to_document()
        assert doc["riskScore"] == 10
        assert "lastUpdated" in doc
        assert doc["capabilities"]["allowWebRTC"] is False

    def test_round_trip_from_document(self) -> None:
        policy = Policy(whitelisted=True, risk_score=42, origin="example.com")
        assert Policy.model_validate(policy.to_document()).to_document() == policy.to_document()

    def test_risk_score_range(self) -> None:
        with pytest.raises(ValidationError):
            Policy(risk_score=101)


@pytest.mark.unit
class TestAuditEvent:
    def test_blocked_requires_reason(self) -> None:
        with pytest.raises(ValidationError):
            AuditEvent(origin="example.com", capability="fetch", action=AuditAction.BLOCKED)

    def test_allowed_without_reason(self) -> None:
        event = AuditEvent(origin="example.com", capability="fetch", action="allowed")
        assert event.action is AuditAction.ALLOWED
        assert event.reason is None

    def test_stamped_assigns_id_and_timestamp(self) -> None:
        event = AuditEvent(origin="example.com", capability="fetch", action="allowed")
        first = event.stamped()
        second = event.stamped()
        assert first.id and second.id
        assert first.id != second.id
        assert first.timestamp is not None
        assert event.id is None

    def test_user_message_alias(self) -> None:
        event = AuditEvent.model_validate(
            {
                "origin": "example.com",
                "capability": "fetch",
                "action": "blocked",
                "reason": "x",
                "userMessage": "Blocked network request to /a",
            }
        )
        assert event.user_message == "Blocked network request to /a"
        assert event.to_document()["userMessage"] == "Blocked network request to /a"


@pytest.mark.unit
class TestPolicyListing:
    def test_document(self) -> None:
        listing = PolicyListing(origin="a.com", policy=Policy(), risk_score=50)
        doc = listing.to_document()
        assert doc["origin"] == "a.com"
        assert doc["riskScore"] == 50
