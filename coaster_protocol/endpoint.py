# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Cooperative asyncio endpoint for the device side.

One task per communication endpoint: await bytes, feed the session,
write back everything it produced. The task only suspends on reads and
writes; the session itself never blocks.

    reader, writer = await asyncio.open_connection(host, port)
    session = DeviceSession(MemoryImageSink(256 * 1024))
    await serve_device(reader, writer, session)
"""

import asyncio
import logging

from .device import DeviceSession
from .errors import TransportError
from .log import TRACE

logger = logging.getLogger(__name__)

# Full-speed USB CDC packet size
DEFAULT_READ_SIZE = 64


async def _flush(writer: asyncio.StreamWriter, session: DeviceSession) -> None:
    sent = False
    while True:
        frame = session.take_outgoing()
        if frame is None:
            break
        logger.log(TRACE, "Writing %d bytes", len(frame))
        writer.write(frame)
        sent = True
    if sent:
        await writer.drain()


async def serve_device(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    session: DeviceSession,
    read_size: int = DEFAULT_READ_SIZE,
) -> DeviceSession:
    """
    Run a device session over an asyncio stream pair until it is done.

    Returns:
        The finished session

    Raises:
        TransportError: If the host disconnects before the download finishes
        SessionError: If the exchange fails
    """
    logger.info("Connected")
    while not session.is_done():
        data = await reader.read(read_size)
        if not data:
            raise TransportError("Host disconnected before download finished")
        session.feed(data)
        await _flush(writer, session)

    logger.info("Download finished, image verified: %s", session.image_verified)
    return session
