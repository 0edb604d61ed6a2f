"""Tests for model session coordination."""

import asyncio
import time

import pytest

from coordinator import ModelSessionCoordinator
from installer import ModelInstaller
from ollama_api import GenerationError, GenerationTimeout


def collect():
    frames = []

    async def notify(frame):
        frames.append(frame)

    return frames, notify


def test_same_model_skips_probe_and_install(coordinator, session, ollama, installer):
    result = asyncio.run(coordinator.chat("hi", "llama3.1:8b"))

    assert result.status == "ready"
    assert ollama.probes == []
    assert installer.calls == []
    assert ollama.generations == [("hi", "llama3.1:8b")]
    assert session.current == "llama3.1:8b"


def test_missing_model_name_uses_session_model(coordinator, session, ollama):
    result = asyncio.run(coordinator.chat("hi"))

    assert result.model == "llama3.1:8b"
    assert ollama.probes == []
    assert session.current == "llama3.1:8b"


def test_installed_model_switches_without_install(coordinator, session, installer):
    frames, notify = collect()

    ensured = asyncio.run(coordinator.ensure_model("mistral:7b", notify))

    assert ensured.ok and not ensured.pulled
    assert installer.calls == []
    assert frames == []
    assert session.current == "mistral:7b"


def test_bare_name_matches_installed_tag(coordinator, session, installer):
    ensured = asyncio.run(coordinator.ensure_model("mistral"))

    assert ensured.ok
    assert installer.calls == []
    assert session.current == "mistral"


def test_missing_model_is_installed_then_used(coordinator, session, catalog, ollama, installer):
    frames, notify = collect()

    result = asyncio.run(coordinator.chat("hi", "phi3:mini", notify))

    assert installer.calls == ["phi3:mini"]
    assert [frame.status for frame in frames] == ["installing", "installed"]
    assert "Pulling it now" in frames[0].message
    assert result.status == "ready"
    assert result.pulled is True
    assert session.current == "phi3:mini"
    assert catalog.models().count("phi3:mini") == 1
    assert ollama.generations == [("hi", "phi3:mini")]


def test_failed_install_leaves_session_unchanged(session, catalog, ollama, failing_installer):
    coordinator = ModelSessionCoordinator(session, catalog, api=ollama, installer=failing_installer)
    frames, notify = collect()

    result = asyncio.run(coordinator.chat("hi", "phi3:mini", notify))

    assert result.status == "error"
    assert result.error.kind == "install_failed"
    assert "no space left" in result.error.detail
    assert [frame.status for frame in frames] == ["installing", "install_failed"]
    assert session.current == "llama3.1:8b"
    assert "phi3:mini" not in catalog
    assert ollama.generations == []


def test_fallback_route_install_switches_session(session, catalog, ollama, monkeypatch):
    installer = ModelInstaller(catalog, workers=1)
    commands = []

    def fake_run(cmd):
        commands.append(cmd[0])
        if cmd[0] == "bash":
            return False, "script exploded"
        ollama.installed.append(cmd[-1])
        return True, "success"

    monkeypatch.setattr(installer, "_run_command", fake_run)
    coordinator = ModelSessionCoordinator(session, catalog, api=ollama, installer=installer)

    result = asyncio.run(coordinator.chat("hi", "phi3:mini"))

    assert commands == ["bash", "ollama"]
    assert result.status == "ready"
    assert session.current == "phi3:mini"
    assert "phi3:mini" in catalog
    assert ollama.generations == [("hi", "phi3:mini")]
    installer.shutdown()


def test_generation_timeout_and_failure_are_distinct(coordinator, ollama):
    ollama.reply = GenerationTimeout("timed out after 60s")
    timed_out = asyncio.run(coordinator.chat("hi"))

    ollama.reply = GenerationError("model crashed")
    failed = asyncio.run(coordinator.chat("hi"))

    assert timed_out.error.kind == "timeout"
    assert failed.error.kind == "generation_failed"
    assert timed_out.response is None and failed.response is None


def test_concurrent_requests_for_same_missing_model_install_once(coordinator, installer, session):
    async def both():
        return await asyncio.gather(
            coordinator.chat("one", "phi3:mini"),
            coordinator.chat("two", "phi3:mini"),
        )

    results = asyncio.run(both())

    assert [r.status for r in results] == ["ready", "ready"]
    assert installer.calls == ["phi3:mini"]
    assert session.current == "phi3:mini"


def test_switch_during_generation_does_not_change_request_model(coordinator, ollama, session):
    generate = ollama.generate

    def generate_while_another_request_switches(message, model_name):
        session.switch("mistral:7b")
        return generate(message, model_name)

    ollama.generate = generate_while_another_request_switches

    result = asyncio.run(coordinator.chat("hi", "llama3.1:8b"))

    assert result.model == "llama3.1:8b"
    assert ollama.generations == [("hi", "llama3.1:8b")]
    assert session.current == "mistral:7b"


def test_pull_does_not_switch_session(coordinator, session, catalog, installer):
    result = asyncio.run(coordinator.pull("gemma2:9b"))

    assert result.ok
    assert installer.calls == ["gemma2:9b"]
    assert "gemma2:9b" in catalog
    assert session.current == "llama3.1:8b"


def test_pull_of_installed_model_skips_installer(coordinator, catalog, installer):
    result = asyncio.run(coordinator.pull("mistral:7b"))

    assert result.ok
    assert "already installed" in result.log
    assert installer.calls == []


def test_model_statuses(coordinator, catalog):
    catalog.add("phi3:mini")

    statuses, current = coordinator.model_statuses()

    assert {s.name: s.installed for s in statuses} == {
        "llama3.1:8b": True,
        "mistral:7b": True,
        "phi3:mini": False,
    }
    assert current == "llama3.1:8b"


def test_install_locks_released_after_failed_pulls(session, catalog, ollama, failing_installer):
    coordinator = ModelSessionCoordinator(session, catalog, api=ollama, installer=failing_installer)

    async def many():
        for i in range(50):
            await coordinator.chat("hi", f"bogus-{i}")

    asyncio.run(many())

    assert coordinator._install_locks == {}
    assert session.current == "llama3.1:8b"


def test_install_locks_released_after_concurrent_pulls(coordinator, installer):
    async def both():
        await asyncio.gather(coordinator.pull("phi3:mini"), coordinator.pull("phi3:mini"))

    asyncio.run(both())

    assert installer.calls == ["phi3:mini"]
    assert coordinator._install_locks == {}


def test_session_switches_even_if_installed_notice_cannot_be_sent(coordinator, session):
    async def notify(frame):
        if frame.status == "installed":
            raise ConnectionError("peer went away")

    with pytest.raises(ConnectionError):
        asyncio.run(coordinator.ensure_model("phi3:mini", notify))

    assert session.current == "phi3:mini"


def test_generation_deadline_applies_to_wall_clock(session, catalog, ollama, installer):
    coordinator = ModelSessionCoordinator(session, catalog, api=ollama, installer=installer,
                                          generation_timeout=0.1)

    def slow_generate(message, model_name):
        time.sleep(1)
        return "too late"

    ollama.generate = slow_generate

    result = asyncio.run(coordinator.chat("hi"))

    assert result.status == "error"
    assert result.error.kind == "timeout"
    assert "timed out after 0.1s" in result.error.detail
