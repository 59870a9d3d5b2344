"""Tests for gatekeep.entrypoint and gatekeep.registry modules."""

from __future__ import annotations

import pytest

from gatekeep.context import InvocationContext
from gatekeep.entrypoint import Entrypoint, Parameter
from gatekeep.errors import ConfigError, ContinuationError
from gatekeep.registry import EntrypointRegistry

STAFF = 100


async def _noop(ctx: InvocationContext) -> None:
    return None


async def _listener(ctx: InvocationContext, args: dict[str, str]) -> None:
    return None


def _entrypoint(name: str = "poll", **kwargs) -> Entrypoint:
    entrypoint = Entrypoint(name, f"{name} command", staff_group_id=STAFF, **kwargs)
    entrypoint.set_handler(_noop)
    return entrypoint


class TestEntrypoint:
    """Tests for Entrypoint declaration."""

    def test_invalid_name(self) -> None:
        with pytest.raises(ConfigError, match="Invalid command name"):
            Entrypoint("Bad Name", "nope")

    def test_trailing_newline_rejected(self) -> None:
        with pytest.raises(ConfigError, match="Invalid command name"):
            Entrypoint("poll\n", "nope")

    def test_staff_default_permission(self) -> None:
        entrypoint = Entrypoint("poll", "Create a poll", staff_group_id=STAFF)
        assert entrypoint.get_permissions().items() == [(STAFF, True)]

    def test_get_permissions_returns_copy(self) -> None:
        entrypoint = _entrypoint()
        entrypoint.get_permissions().add(1, True)
        assert 1 not in entrypoint.permissions

    def test_handler_decorator(self) -> None:
        entrypoint = Entrypoint("poll", "Create a poll")

        @entrypoint.handler
        async def create(ctx: InvocationContext) -> None:
            return None

        assert entrypoint.handler_variant is not None
        assert entrypoint.handler_variant.fn is create

    def test_listener_names_are_namespaced(self) -> None:
        entrypoint = _entrypoint()
        reference = entrypoint.add_interaction_listener("vote", ("poll_id",), _listener)
        assert "poll#vote" in entrypoint.interaction_listeners
        assert reference(poll_id=42) == "poll#vote:42"

    def test_reference_factory_checks_arguments(self) -> None:
        entrypoint = _entrypoint()
        reference = entrypoint.add_interaction_listener("vote", ("poll_id",), _listener)
        with pytest.raises(ContinuationError, match="missing"):
            reference()
        with pytest.raises(ContinuationError, match="unexpected"):
            reference(poll_id=1, page=2)

    def test_duplicate_listener_label(self) -> None:
        entrypoint = _entrypoint()
        entrypoint.add_interaction_listener("vote", (), _listener)
        with pytest.raises(ConfigError, match="Duplicate"):
            entrypoint.add_interaction_listener("vote", (), _listener)

    def test_invalid_listener_label(self) -> None:
        entrypoint = _entrypoint()
        with pytest.raises(ConfigError, match="Invalid listener label"):
            entrypoint.add_interaction_listener("vote:now", (), _listener)

    def test_command_payload(self) -> None:
        entrypoint = _entrypoint(
            parameters=(Parameter("minutes", "integer", "How long", required=True),)
        )
        payload = entrypoint.command_payload()
        assert payload["name"] == "poll"
        assert payload["type"] == 1
        assert payload["options"] == [
            {"name": "minutes", "description": "How long", "type": 4, "required": True}
        ]

    def test_parameter_choices(self) -> None:
        param = Parameter("unit", choices=(("Minutes", "m"), ("Hours", "h")))
        assert param.to_payload()["choices"] == [
            {"name": "Minutes", "value": "m"},
            {"name": "Hours", "value": "h"},
        ]


class TestRegister:
    """Tests for EntrypointRegistry.register."""

    def test_register_and_lookup(self) -> None:
        registry = EntrypointRegistry()
        entrypoint = _entrypoint()
        registry.register(entrypoint)
        assert registry.get_entrypoint("poll") is entrypoint
        assert "poll" in registry
        assert len(registry) == 1

    def test_duplicate_name(self) -> None:
        registry = EntrypointRegistry()
        registry.register(_entrypoint())
        with pytest.raises(ConfigError, match="already registered"):
            registry.register(_entrypoint())

    def test_missing_handler(self) -> None:
        registry = EntrypointRegistry()
        with pytest.raises(ConfigError, match="Handler not registered"):
            registry.register(Entrypoint("poll", "Create a poll"))

    def test_listener_collision_registers_nothing(self) -> None:
        registry = EntrypointRegistry()
        first = _entrypoint()
        first.add_interaction_listener("vote", (), _listener)
        registry.register(first)

        # Same listener name, different entrypoint object under a new name
        second = _entrypoint("survey")
        second.interaction_listeners["poll#vote"] = first.interaction_listeners["poll#vote"]
        with pytest.raises(ConfigError, match="collides"):
            registry.register(second)
        assert "survey" not in registry
        assert not second.registered

    def test_structure_frozen_after_registration(self) -> None:
        registry = EntrypointRegistry()
        entrypoint = _entrypoint()
        registry.register(entrypoint)

        with pytest.raises(ConfigError, match="already registered"):
            entrypoint.set_handler(_noop)
        with pytest.raises(ConfigError, match="already registered"):
            entrypoint.add_interaction_listener("vote", (), _listener)
        with pytest.raises(ConfigError, match="already registered"):
            entrypoint.add_reaction_listener("star", _noop)

    def test_permissions_mutable_after_registration(self) -> None:
        registry = EntrypointRegistry()
        entrypoint = _entrypoint()
        registry.register(entrypoint)
        entrypoint.add_permission(7, True)
        assert 7 in entrypoint.permissions

    def test_command_payloads(self) -> None:
        registry = EntrypointRegistry()
        registry.register_all([_entrypoint("poll"), _entrypoint("remind")])
        assert [p["name"] for p in registry.command_payloads()] == ["poll", "remind"]


class TestResolveReference:
    """Tests for reference resolution and revocation."""

    @pytest.fixture
    def registry(self) -> EntrypointRegistry:
        registry = EntrypointRegistry()
        entrypoint = _entrypoint()
        entrypoint.add_interaction_listener("vote", ("poll_id",), _listener)
        registry.register(entrypoint)
        return registry

    def test_resolves(self, registry: EntrypointRegistry) -> None:
        resolved = registry.resolve_reference("poll#vote:42")
        assert resolved is not None
        listener, args = resolved
        assert listener.name == "poll#vote"
        assert args == {"poll_id": "42"}

    @pytest.mark.parametrize(
        "reference", ["poll#nope:1", "poll#vote", "poll#vote:1:2", "", "poll#vote:%zz"]
    )
    def test_unresolvable(self, registry: EntrypointRegistry, reference: str) -> None:
        assert registry.resolve_reference(reference) is None

    def test_revoke_claims_once(self, registry: EntrypointRegistry) -> None:
        assert registry.revoke("poll#vote:42") is True
        assert registry.revoke("poll#vote:42") is False
        assert registry.resolve_reference("poll#vote:42") is None
        assert registry.resolve_reference("poll#vote:43") is not None

    def test_revoke_listener(self, registry: EntrypointRegistry) -> None:
        assert registry.revoke_listener("poll#vote") is True
        assert registry.revoke_listener("poll#vote") is False
        assert registry.revoke_listener("poll#unknown") is False
        assert registry.resolve_reference("poll#vote:43") is None
        assert registry.get_listener("poll#vote") is None

    def test_revoked_reference_has_no_other_spelling(
        self, registry: EntrypointRegistry
    ) -> None:
        assert registry.revoke("poll#vote:a%3Ab") is True
        assert registry.resolve_reference("poll#vote:a%3Ab") is None
        assert registry.resolve_reference("poll#vote:a%3ab") is None

    def test_revocations_are_bounded(self) -> None:
        registry = EntrypointRegistry(max_revoked_references=2)
        entrypoint = _entrypoint()
        entrypoint.add_interaction_listener("vote", ("poll_id",), _listener)
        registry.register(entrypoint)

        for poll_id in (1, 2, 3):
            assert registry.revoke(f"poll#vote:{poll_id}") is True

        # Oldest revocation is forgotten first
        assert registry.resolve_reference("poll#vote:1") is not None
        assert registry.resolve_reference("poll#vote:2") is None
        assert registry.resolve_reference("poll#vote:3") is None
