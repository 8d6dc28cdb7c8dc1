# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Tests for the host-side session state machine."""

import pytest

from coaster_protocol.crc32 import crc32_bytes
from coaster_protocol.errors import (
    ChunkRequestOutOfBounds,
    FramingError,
    IncorrectDeviceMode,
    InvalidChunkSize,
    RxBufferNotEnoughSpace,
    SessionEnded,
    TransmitSlotOccupied,
    UnexpectedMessage,
)
from coaster_protocol.framing import decode_frame, encode_frame
from coaster_protocol.messages import (
    ChunkReq,
    ChunkResp,
    Goodbye,
    GoodbyeReason,
    Hello,
    HelloResp,
    ReadyToDownload,
    ReadyToDownloadResponse,
    SystemMode,
    VersionNumber,
)
from coaster_protocol.session import HostSession, HostState, Progress

FIRMWARE = bytes([1, 2, 3, 4, 5])
FIRMWARE_HASH = bytes.fromhex("3ab6905e26b0ab20169aca2ebe84b6bd9c65f455d96079b8f284396c8acd0daf")
HELLO_RESP = encode_frame(HelloResp(mode=SystemMode.BOOTLOADER, version=VersionNumber(0, 1, 0)))


def outgoing(session):
    """Take and decode the pending frame."""
    frame = session.take_outgoing()
    assert frame is not None
    consumed, message = decode_frame(frame)
    assert consumed == len(frame)
    return message


def started(firmware=FIRMWARE, **kwargs):
    """A session that has sent Hello."""
    session = HostSession(firmware, **kwargs)
    session.feed()
    assert outgoing(session) == Hello()
    return session


def transferring(firmware=FIRMWARE, chunk_size=4, payload_size=4):
    """A session in CHUNK_TRANSFER with nothing pending."""
    session = started(firmware, payload_size=payload_size)
    session.feed(HELLO_RESP)
    session.take_outgoing()
    session.feed(encode_frame(ReadyToDownloadResponse(desired_chunk_size=chunk_size)))
    assert session.state is HostState.CHUNK_TRANSFER
    return session


class TestConstruction:
    """Tests for HostSession construction."""

    def test_initial_state(self):
        """A new session is idle with nothing to send."""
        session = HostSession(FIRMWARE)
        assert session.state is HostState.START
        assert not session.has_outgoing()
        assert session.take_outgoing() is None
        assert session.progress() == Progress(0, 0)
        assert session.firmware_size == 5

    def test_empty_firmware(self):
        """An empty image is rejected."""
        with pytest.raises(ValueError):
            HostSession(b"")


class TestHandshake:
    """Tests for Hello and ReadyToDownload."""

    def test_start_queues_hello(self):
        """First feed with no data queues Hello."""
        session = HostSession(FIRMWARE)
        session.feed()
        assert session.state is HostState.WAITING_HELLO_RESP
        assert session.has_outgoing()
        assert session.take_outgoing() == encode_frame(Hello())
        assert not session.has_outgoing()

    def test_hello_resp_sends_ready_to_download(self):
        """HelloResp from a bootloader is answered with the image announcement."""
        session = started(version=VersionNumber(1, 2, 3))
        session.feed(HELLO_RESP)
        assert session.state is HostState.WAITING_READY_TO_DOWNLOAD_RESP
        message = outgoing(session)
        assert message == ReadyToDownload(
            image_size_bytes=5, version=VersionNumber(1, 2, 3), hash=FIRMWARE_HASH
        )
        assert session.image_hash == FIRMWARE_HASH

    def test_application_mode_rejected(self):
        """A device running its application cannot accept an image."""
        session = started()
        with pytest.raises(IncorrectDeviceMode) as excinfo:
            session.feed(encode_frame(HelloResp(mode=SystemMode.APPLICATION)))
        assert excinfo.value.mode == SystemMode.APPLICATION
        assert not session.has_outgoing()

    def test_ready_to_download_response_sets_chunk_size(self):
        """The device's chunk size and the last chunk index are recorded."""
        session = transferring(bytes(2049), chunk_size=1024, payload_size=1024)
        assert session.chunk_size == 1024
        assert session.progress() == Progress(current_chunk=0, max_chunks=2)
        assert not session.has_outgoing()

    def test_chunk_size_too_large(self):
        """Chunk sizes above the payload size are rejected."""
        session = started(payload_size=4)
        session.feed(HELLO_RESP)
        session.take_outgoing()
        with pytest.raises(InvalidChunkSize):
            session.feed(encode_frame(ReadyToDownloadResponse(desired_chunk_size=8)))

    def test_chunk_size_zero(self):
        """A zero chunk size is rejected."""
        session = started()
        session.feed(HELLO_RESP)
        session.take_outgoing()
        with pytest.raises(InvalidChunkSize):
            session.feed(encode_frame(ReadyToDownloadResponse(desired_chunk_size=0)))


class TestChunkTransfer:
    """Tests for serving chunk requests."""

    def test_five_byte_image(self):
        """Full exchange over a 5-byte image in 4-byte chunks."""
        session = started(payload_size=4)

        session.feed(HELLO_RESP)
        rtd = outgoing(session)
        assert rtd.image_size_bytes == 5
        assert rtd.hash == FIRMWARE_HASH

        session.feed(encode_frame(ReadyToDownloadResponse(desired_chunk_size=4)))
        assert session.progress() == Progress(0, 1)

        session.feed(encode_frame(ChunkReq(chunk_number=0)))
        assert outgoing(session) == ChunkResp(
            chunk_number=0, chunk_data=b"\x01\x02\x03\x04", crc32=crc32_bytes(b"\x01\x02\x03\x04")
        )

        session.feed(encode_frame(ChunkReq(chunk_number=1)))
        assert outgoing(session) == ChunkResp(
            chunk_number=1, chunk_data=b"\x05\x00\x00\x00", crc32=crc32_bytes(b"\x05\x00\x00\x00")
        )
        assert session.progress() == Progress(1, 1)

        with pytest.raises(ChunkRequestOutOfBounds):
            session.feed(encode_frame(ChunkReq(chunk_number=2)))

    def test_chunk_can_be_requested_again(self):
        """A repeated request is served again."""
        session = transferring()
        session.feed(encode_frame(ChunkReq(chunk_number=0)))
        first = session.take_outgoing()
        session.feed(encode_frame(ChunkReq(chunk_number=0)))
        assert session.take_outgoing() == first

    def test_goodbye_ends_session(self):
        """Goodbye moves to DONE and records the reason."""
        session = transferring()
        session.feed(encode_frame(Goodbye(reason=GoodbyeReason.INSTALLING_NEW_FIRMWARE)))
        assert session.is_done()
        assert session.goodbye_reason == GoodbyeReason.INSTALLING_NEW_FIRMWARE
        assert session.error is None
        with pytest.raises(SessionEnded):
            session.feed(b"")

    def test_hash_mismatch_goodbye(self):
        """A mismatch Goodbye still ends the session normally."""
        session = transferring()
        session.feed(encode_frame(Goodbye(reason=GoodbyeReason.DOWNLOAD_HASH_MISMATCH)))
        assert session.is_done()
        assert session.goodbye_reason == GoodbyeReason.DOWNLOAD_HASH_MISMATCH

    def test_bytes_after_goodbye_discarded(self):
        """Anything after Goodbye in the same feed is dropped."""
        session = transferring()
        data = encode_frame(Goodbye(reason=GoodbyeReason.INSTALLING_NEW_FIRMWARE))
        session.feed(data + encode_frame(ChunkReq(chunk_number=0)))
        assert session.is_done()
        assert session.buffered == 0
        assert not session.has_outgoing()


class TestFeeding:
    """Tests for buffering and frame extraction."""

    def test_byte_by_byte(self):
        """Frames split across many feeds are reassembled."""
        session = started()
        for byte in HELLO_RESP[:-1]:
            session.feed(bytes([byte]))
            assert session.state is HostState.WAITING_HELLO_RESP
        assert session.buffered == len(HELLO_RESP) - 1
        session.feed(HELLO_RESP[-1:])
        assert session.state is HostState.WAITING_READY_TO_DOWNLOAD_RESP
        assert session.buffered == 0

    def test_several_frames_in_one_feed(self):
        """All complete frames in one feed are processed in order."""
        session = started(payload_size=4)
        session.feed(HELLO_RESP)
        session.take_outgoing()
        session.feed(
            encode_frame(ReadyToDownloadResponse(desired_chunk_size=4))
            + encode_frame(ChunkReq(chunk_number=0))
        )
        assert session.state is HostState.CHUNK_TRANSFER
        assert outgoing(session).chunk_number == 0

    def test_partial_frame_kept(self):
        """A trailing partial frame waits for more bytes."""
        session = transferring()
        req = encode_frame(ChunkReq(chunk_number=1))
        session.feed(req[:3])
        assert session.buffered == 3
        assert not session.has_outgoing()
        session.feed(req[3:])
        assert outgoing(session).chunk_number == 1

    def test_buffer_overrun(self):
        """Feeding past capacity fails without touching the buffer."""
        session = HostSession(FIRMWARE, rx_capacity=16)
        session.feed()
        session.take_outgoing()
        session.feed(HELLO_RESP[:2])
        with pytest.raises(RxBufferNotEnoughSpace) as excinfo:
            session.feed(bytes(15))
        assert excinfo.value.buffered == 2
        assert excinfo.value.incoming == 15
        assert session.buffered == 2

    def test_garbage_is_framing_error(self):
        """A complete frame that does not decode is fatal."""
        session = started()
        with pytest.raises(FramingError):
            session.feed(b"\x00\x03\x83\x01\x02")


class TestErrors:
    """Tests for fatal errors and the transmit slot."""

    def test_unexpected_message(self):
        """A message that does not fit the state ends the session."""
        session = started()
        with pytest.raises(UnexpectedMessage) as excinfo:
            session.feed(encode_frame(ChunkReq(chunk_number=0)))
        assert excinfo.value.message == ChunkReq(chunk_number=0)
        assert session.state is HostState.WAITING_HELLO_RESP
        assert isinstance(session.error, UnexpectedMessage)
        with pytest.raises(SessionEnded):
            session.feed(HELLO_RESP)

    def test_hello_resp_while_waiting_for_chunk_size(self):
        """HelloResp is not taken for a ReadyToDownloadResponse that shares its tag."""
        session = started()
        session.feed(HELLO_RESP)
        session.take_outgoing()
        stray = HelloResp(mode=SystemMode.APPLICATION, version=VersionNumber(1, 2, 3))
        with pytest.raises(UnexpectedMessage) as excinfo:
            session.feed(encode_frame(stray))
        assert excinfo.value.message == stray
        assert session.state is HostState.WAITING_READY_TO_DOWNLOAD_RESP
        assert session.chunk_size == 0

    def test_unexpected_message_during_transfer(self):
        """HelloResp is not valid while transferring chunks."""
        session = transferring()
        with pytest.raises(UnexpectedMessage):
            session.feed(HELLO_RESP)

    def test_transmit_slot_occupied(self):
        """A reply cannot be queued while the previous frame is untaken."""
        session = HostSession(FIRMWARE)
        session.feed()
        with pytest.raises(TransmitSlotOccupied):
            session.feed(HELLO_RESP)
        assert session.take_outgoing() == encode_frame(Hello())

    def test_feed_after_error(self):
        """Every feed after a failure raises SessionEnded."""
        session = started()
        with pytest.raises(FramingError):
            session.feed(b"\x00\x01\x05")
        for _ in range(2):
            with pytest.raises(SessionEnded):
                session.feed(b"")


class TestLoopback:
    """Host against the in-memory bootloader."""

    def test_full_download(self, firmware, loopback, pump):
        """A multi-chunk image lands byte-for-byte in the sink."""
        host, device, sink = loopback(firmware)
        pump(host, device)
        assert host.goodbye_reason == GoodbyeReason.INSTALLING_NEW_FIRMWARE
        assert host.progress() == Progress(current_chunk=2, max_chunks=2)
        assert sink.image == firmware
        assert sink.updated

    def test_small_chunks(self, firmware, loopback, pump):
        """Device-chosen chunk sizes below the payload size work."""
        host, device, sink = loopback(firmware, chunk_size=100)
        pump(host, device)
        assert host.chunk_size == 100
        assert host.progress().max_chunks == 25
        assert sink.image == firmware

