"""
Tests for cancellation tokens and the coordinator.
"""
import asyncio
import threading

import pytest

from detection.cancellation import CancellationCoordinator, CancellationSource, CancellationToken
from detection.exceptions import DetectionCancelled, DetectionError


def test_source_token_reflects_cancel():
    source = CancellationSource()

    assert not source.token.cancelled
    source.cancel()
    assert source.token.cancelled


def test_raise_if_cancelled():
    source = CancellationSource()
    source.token.raise_if_cancelled()

    source.cancel()

    with pytest.raises(DetectionCancelled):
        source.token.raise_if_cancelled()


def test_cancelled_is_a_detection_error():
    assert issubclass(DetectionCancelled, DetectionError)


@pytest.mark.parametrize("make_event", [asyncio.Event, threading.Event])
def test_merged_token_fires_on_external_event(make_event):
    external = make_event()
    coordinator = CancellationCoordinator()
    source = coordinator.begin(external)

    assert not source.token.cancelled
    external.set()
    assert source.token.cancelled


def test_merged_token_fires_on_external_token():
    external = CancellationSource()
    source = CancellationCoordinator().begin(external.token)

    external.cancel()

    assert source.token.cancelled


def test_coordinator_cancels_active_scans_only():
    coordinator = CancellationCoordinator()
    first = coordinator.begin()
    second = coordinator.begin()
    coordinator.finish(second)

    assert coordinator.cancel() == 1
    assert first.token.cancelled
    assert not second.token.cancelled
    assert coordinator.active_count == 1


def test_cancel_with_nothing_running():
    assert CancellationCoordinator().cancel() == 0


def test_unsupported_signal_rejected():
    with pytest.raises(TypeError):
        CancellationCoordinator().begin(object())


def test_token_without_sources_never_cancels():
    assert not CancellationToken().cancelled


@pytest.mark.asyncio
async def test_future_is_not_a_cancellation_signal():
    future = asyncio.get_running_loop().create_future()

    with pytest.raises(TypeError):
        CancellationCoordinator().begin(future)

    future.cancel()


def test_lookalike_with_cancelled_attribute_rejected():
    class Lookalike:
        def cancelled(self):
            return False

    with pytest.raises(TypeError):
        CancellationCoordinator().begin(Lookalike())
