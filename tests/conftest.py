# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Pytest configuration: shared fixtures and hardware integration options."""

import pytest

from coaster_protocol.device import DeviceSession, MemoryImageSink
from coaster_protocol.session import HostSession


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="Serial port of a device running the bootloader (e.g., /dev/ttyACM0)",
    )
    parser.addoption(
        "--firmware",
        action="store",
        default=None,
        help="Firmware binary to upload during integration tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a device port was given."""
    if config.getoption("--device"):
        return
    skip = pytest.mark.skip(reason="needs --device PORT")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def device_port(request):
    """Serial port of the device under test."""
    return request.config.getoption("--device")


@pytest.fixture(scope="session")
def firmware_path(request):
    """Firmware file given on the command line, if any."""
    return request.config.getoption("--firmware")


@pytest.fixture
def firmware():
    """A multi-chunk image with a short final chunk (2.5 chunks of 1024)."""
    return bytes((i * 7 + 3) & 0xFF for i in range(2560))


def pump(host: HostSession, device: DeviceSession, max_rounds: int = 10000) -> None:
    """Shuttle frames between a host and a device session until both are done."""
    host.feed()
    for _ in range(max_rounds):
        moved = False
        frame = host.take_outgoing()
        if frame is not None:
            device.feed(frame)
            moved = True
        while True:
            frame = device.take_outgoing()
            if frame is None:
                break
            host.feed(frame)
            moved = True
        if host.is_done() and device.is_done():
            return
        if not moved:
            raise AssertionError("Exchange stalled")
    raise AssertionError("Exchange did not finish")


@pytest.fixture
def loopback():
    """Build a connected host/device pair over an in-memory sink."""

    def make(firmware, sink_capacity=64 * 1024, **device_kwargs):
        sink = MemoryImageSink(sink_capacity)
        device = DeviceSession(sink, **device_kwargs)
        host_kwargs = {}
        if "payload_size" in device_kwargs:
            host_kwargs["payload_size"] = device_kwargs["payload_size"]
        host = HostSession(firmware, **host_kwargs)
        return host, device, sink

    return make


@pytest.fixture(name="pump")
def pump_fixture():
    """The pump() helper, as a fixture."""
    return pump
