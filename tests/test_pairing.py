"""Tests for the pairing coordinator."""

from __future__ import annotations

import asyncio

import pytest

from atv_remote.errors import (
    CertificateUnavailable,
    HandshakeRejected,
    InvalidCodeFormat,
    MissingParameters,
    NoPairingInProgress,
    TransportError,
)
from atv_remote.pairing import PairingCoordinator, normalize_code
from atv_remote.store import ConnectionStatus

from .conftest import MOCK_CERT, MOCK_HOST, MOCK_KEY, save_paired


@pytest.fixture
async def coordinator(credential_store, manager, session_factory, clock):
    pairing = PairingCoordinator(
        credential_store,
        manager,
        session_factory,
        display_timeout=0.2,
        ttl=300,
        client_name="Test Hub",
        clock=clock,
    )
    yield pairing
    pairing.shutdown()


@pytest.mark.parametrize("code", ["ab12cd", "AB12CD", " Ab12Cd "])
def test_normalize_code_accepts(code: str) -> None:
    """Test six alphanumeric characters are accepted and upper-cased."""
    assert normalize_code(code) == "AB12CD"


@pytest.mark.parametrize("code", ["12345", "AB12C!", "1234567", "", None])
def test_normalize_code_rejects(code) -> None:
    """Test malformed codes are rejected."""
    with pytest.raises(InvalidCodeFormat):
        normalize_code(code)


async def test_start_pairing_code_displayed(coordinator, session_factory) -> None:
    """Test starting a pairing reports the code is on screen."""
    displayed = await coordinator.start_pairing("tv1", MOCK_HOST, "Living Room Hub")

    assert displayed is True
    assert coordinator.pending() == ["tv1"]
    assert session_factory.latest("tv1").client_name == "Living Room Hub"


async def test_start_pairing_default_name(coordinator, session_factory) -> None:
    """Test the configured client name is used when none is given."""
    await coordinator.start_pairing("tv1", MOCK_HOST)
    assert session_factory.latest("tv1").client_name == "Test Hub"


async def test_start_pairing_requires_host(coordinator) -> None:
    """Test start_pairing needs a device id and host."""
    with pytest.raises(MissingParameters):
        await coordinator.start_pairing("tv1", "")


async def test_start_pairing_slow_tv(coordinator, session_factory) -> None:
    """Test a TV that does not confirm in time leaves the pairing open."""
    def slow(session):
        session.start_delay = 1.0

    session_factory.configure = slow
    displayed = await coordinator.start_pairing("tv1", MOCK_HOST)

    assert displayed is False
    assert coordinator.pending() == ["tv1"]


async def test_start_pairing_transport_error(coordinator, session_factory) -> None:
    """Test an unreachable pairing port discards the session."""
    def failing(session):
        session.start_error = TransportError("refused")

    session_factory.configure = failing

    with pytest.raises(TransportError):
        await coordinator.start_pairing("tv1", MOCK_HOST)

    assert coordinator.pending() == []
    assert session_factory.latest("tv1").closed


async def test_restart_pairing_replaces_previous(coordinator, session_factory) -> None:
    """Test starting twice discards the first pairing session."""
    await coordinator.start_pairing("tv1", MOCK_HOST)
    first = session_factory.latest("tv1")
    await coordinator.start_pairing("tv1", MOCK_HOST)

    assert first.closed
    assert coordinator.pending() == ["tv1"]


async def test_complete_without_pairing(coordinator) -> None:
    """Test completing an unknown pairing fails before the code is checked."""
    with pytest.raises(NoPairingInProgress):
        await coordinator.complete_pairing("tv1", "bad!")


async def test_complete_requires_code(coordinator) -> None:
    """Test complete_pairing needs a code."""
    with pytest.raises(MissingParameters):
        await coordinator.complete_pairing("tv1", "")


async def test_complete_pairing_success(coordinator, credential_store, manager, session_factory) -> None:
    """Test a good code stores credentials and leaves the device connected."""
    await coordinator.start_pairing("tv1", MOCK_HOST, "Hub")

    creds = await coordinator.complete_pairing("tv1", "ab12cd")

    session = session_factory.latest("tv1")
    assert session.pair_codes == ["AB12CD"]
    assert creds.certificate == MOCK_CERT
    assert creds.private_key == MOCK_KEY
    assert credential_store.get("tv1").host == MOCK_HOST
    assert manager.status("tv1") == ConnectionStatus.CONNECTED
    assert manager.poller.is_running("tv1")
    assert coordinator.pending() == []
    # The pairing session itself became the device session
    assert len(session_factory.for_device("tv1")) == 1


async def test_complete_pairing_bad_format(coordinator, credential_store) -> None:
    """Test a malformed code ends the pairing with the device unpaired."""
    await coordinator.start_pairing("tv1", MOCK_HOST)

    with pytest.raises(InvalidCodeFormat):
        await coordinator.complete_pairing("tv1", "12345")

    assert coordinator.pending() == []
    assert "tv1" not in credential_store


async def test_complete_pairing_rejected(coordinator, credential_store, session_factory) -> None:
    """Test a code the TV rejects leaves no credentials behind."""
    await coordinator.start_pairing("tv1", MOCK_HOST)
    session_factory.latest("tv1").finish_error = HandshakeRejected("wrong code")

    with pytest.raises(HandshakeRejected):
        await coordinator.complete_pairing("tv1", "AB12CD")

    assert "tv1" not in credential_store
    assert session_factory.latest("tv1").closed


async def test_complete_pairing_no_certificate(coordinator, credential_store, session_factory) -> None:
    """Test missing certificate material fails with CertificateUnavailable."""
    await coordinator.start_pairing("tv1", MOCK_HOST)
    session_factory.latest("tv1").certificate = b""

    with pytest.raises(CertificateUnavailable):
        await coordinator.complete_pairing("tv1", "AB12CD")

    assert "tv1" not in credential_store


async def test_failed_repair_keeps_previous_credentials(coordinator, credential_store, session_factory) -> None:
    """Test a failed re-pair does not remove credentials from an earlier pairing."""
    save_paired(credential_store, "tv1")
    await coordinator.start_pairing("tv1", MOCK_HOST)
    session_factory.latest("tv1").finish_error = HandshakeRejected("wrong code")

    with pytest.raises(HandshakeRejected):
        await coordinator.complete_pairing("tv1", "AB12CD")

    assert "tv1" in credential_store


async def test_pairing_expires(credential_store, manager, session_factory, clock) -> None:
    """Test an uncompleted pairing is discarded after its TTL."""
    pairing = PairingCoordinator(credential_store, manager, session_factory, display_timeout=0.2, ttl=0.05, clock=clock)
    await pairing.start_pairing("tv1", MOCK_HOST)

    await asyncio.sleep(0.1)

    assert pairing.pending() == []
    assert session_factory.latest("tv1").closed
    with pytest.raises(NoPairingInProgress):
        await pairing.complete_pairing("tv1", "AB12CD")


async def test_cancel_pairing(coordinator, session_factory) -> None:
    """Test cancelling abandons the pairing."""
    await coordinator.start_pairing("tv1", MOCK_HOST)

    assert coordinator.cancel("tv1") is True
    assert coordinator.cancel("tv1") is False
    assert session_factory.latest("tv1").closed
