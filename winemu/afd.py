"""AFD (ancillary function driver) socket request types and poll-event mapping."""

from __future__ import annotations

import enum
import select
import struct
from dataclasses import dataclass, field

__all__ = [
    "FILE_DEVICE_NETWORK",
    "FSCTL_AFD_BASE",
    "POLLRDNORM",
    "POLLRDBAND",
    "POLLWRNORM",
    "POLLERR",
    "POLLHUP",
    "POLLNVAL",
    "AfdPollEvent",
    "AfdRequest",
    "PollHandleInfo",
    "PollInfo",
    "afd_request",
    "afd_base",
    "map_afd_request_events_to_socket",
    "map_socket_response_events_to_afd",
    "parse_poll_info",
]

FILE_DEVICE_NETWORK = 0x12
FSCTL_AFD_BASE = FILE_DEVICE_NETWORK

# Host poll flags; fall back to the common POSIX values where the host lacks them.
POLLRDNORM = getattr(select, "POLLRDNORM", 0x040)
POLLRDBAND = getattr(select, "POLLRDBAND", 0x080)
POLLWRNORM = getattr(select, "POLLWRNORM", 0x100)
POLLERR = getattr(select, "POLLERR", 0x008)
POLLHUP = getattr(select, "POLLHUP", 0x010)
POLLNVAL = getattr(select, "POLLNVAL", 0x020)

_POLL_INFO_HEADER = struct.Struct("<qIB3x")
_POLL_HANDLE_INFO = struct.Struct("<QIi")


class AfdPollEvent(enum.IntFlag):
    """Events an AFD poll request can wait for or report."""

    NONE = 0
    RECEIVE = 1 << 0
    RECEIVE_EXPEDITED = 1 << 1
    SEND = 1 << 2
    DISCONNECT = 1 << 3
    ABORT = 1 << 4
    LOCAL_CLOSE = 1 << 5
    CONNECT = 1 << 6
    ACCEPT = 1 << 7
    CONNECT_FAIL = 1 << 8
    QOS = 1 << 9
    GROUP_QOS = 1 << 10
    ALL = (1 << 11) - 1


class AfdRequest(enum.IntEnum):
    """Request numbers encoded in AFD I/O control codes."""

    BIND = 0
    CONNECT = 1
    START_LISTEN = 2
    WAIT_FOR_LISTEN = 3
    ACCEPT = 4
    RECEIVE = 5
    RECEIVE_DATAGRAM = 6
    SEND = 7
    SEND_DATAGRAM = 8
    POLL = 9
    PARTIAL_DISCONNECT = 10
    GET_ADDRESS = 11
    QUERY_RECEIVE_INFO = 12
    QUERY_HANDLES = 13
    SET_INFORMATION = 14
    GET_CONTEXT_LENGTH = 15
    GET_CONTEXT = 16
    SET_CONTEXT = 17
    SET_CONNECT_DATA = 18
    SET_CONNECT_OPTIONS = 19
    SET_DISCONNECT_DATA = 20
    SET_DISCONNECT_OPTIONS = 21
    GET_CONNECT_DATA = 22
    GET_CONNECT_OPTIONS = 23
    GET_DISCONNECT_DATA = 24
    GET_DISCONNECT_OPTIONS = 25
    SIZE_CONNECT_DATA = 26
    SIZE_CONNECT_OPTIONS = 27
    SIZE_DISCONNECT_DATA = 28
    SIZE_DISCONNECT_OPTIONS = 29
    GET_INFORMATION = 30
    TRANSMIT_FILE = 31
    SUPER_ACCEPT = 32
    EVENT_SELECT = 33
    ENUM_NETWORK_EVENTS = 34
    DEFER_ACCEPT = 35
    WAIT_FOR_LISTEN_LIFO = 36
    SET_QOS = 37
    GET_QOS = 38
    NO_OPERATION = 39
    VALIDATE_GROUP = 40
    GET_UNACCEPTED_CONNECT_DATA = 41


@dataclass
class PollHandleInfo:
    """One socket handle in a poll request, with its events and status."""

    handle: int = 0
    poll_events: int = 0
    status: int = 0

    SIZE = _POLL_HANDLE_INFO.size

    def pack(self) -> bytes:
        return _POLL_HANDLE_INFO.pack(self.handle, self.poll_events, self.status)

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> PollHandleInfo:
        handle, events, status = _POLL_HANDLE_INFO.unpack_from(data, offset)
        return cls(handle=handle, poll_events=events, status=status)


@dataclass
class PollInfo:
    """An AFD poll request: timeout, uniqueness flag and the handles polled."""

    timeout: int = 0
    unique: bool = False
    handles: list[PollHandleInfo] = field(default_factory=list)

    HEADER_SIZE = _POLL_INFO_HEADER.size

    @property
    def number_of_handles(self) -> int:
        return len(self.handles)

    def pack(self) -> bytes:
        header = _POLL_INFO_HEADER.pack(self.timeout, len(self.handles), int(self.unique))
        return header + b"".join(entry.pack() for entry in self.handles)


def afd_request(ioctl: int) -> int:
    """Request number carried in an I/O control code."""
    return ((ioctl & 0xFFFFFFFF) >> 2) & 0x03FF


def afd_base(ioctl: int) -> int:
    """Device base carried in an I/O control code."""
    return ((ioctl & 0xFFFFFFFF) >> 12) & 0xFFFFF


def map_afd_request_events_to_socket(poll_events: int) -> int:
    """Translate requested AFD events into host poll flags."""
    socket_events = 0
    if poll_events & (AfdPollEvent.ACCEPT | AfdPollEvent.RECEIVE):
        socket_events |= POLLRDNORM
    if poll_events & AfdPollEvent.RECEIVE_EXPEDITED:
        socket_events |= POLLRDNORM | POLLRDBAND
    if poll_events & (AfdPollEvent.CONNECT_FAIL | AfdPollEvent.SEND):
        socket_events |= POLLWRNORM
    return socket_events


def map_socket_response_events_to_afd(socket_events: int) -> AfdPollEvent:
    """Translate host poll results into AFD events."""
    afd_events = AfdPollEvent.NONE
    if socket_events & POLLRDNORM:
        afd_events |= AfdPollEvent.ACCEPT | AfdPollEvent.RECEIVE
    if socket_events & POLLRDBAND:
        afd_events |= AfdPollEvent.RECEIVE_EXPEDITED
    if socket_events & POLLWRNORM:
        afd_events |= AfdPollEvent.CONNECT_FAIL | AfdPollEvent.SEND
    if (socket_events & (POLLHUP | POLLERR)) == (POLLHUP | POLLERR):
        afd_events |= AfdPollEvent.CONNECT_FAIL | AfdPollEvent.ABORT
    elif socket_events & POLLHUP:
        afd_events |= AfdPollEvent.DISCONNECT
    if socket_events & POLLNVAL:
        afd_events |= AfdPollEvent.LOCAL_CLOSE
    return afd_events


def parse_poll_info(data: bytes) -> PollInfo:
    """Decode a poll request buffer; raises ValueError when it is too short."""
    header_size = _POLL_INFO_HEADER.size
    if len(data) < header_size:
        raise ValueError("Bad AFD poll data")

    timeout, count, unique = _POLL_INFO_HEADER.unpack_from(data, 0)
    if len(data) < header_size + _POLL_HANDLE_INFO.size * count:
        raise ValueError("Bad AFD poll handle data")

    handles = [
        PollHandleInfo.unpack(data, offset)
        for offset in range(header_size, header_size + _POLL_HANDLE_INFO.size * count, _POLL_HANDLE_INFO.size)
    ]
    return PollInfo(timeout=timeout, unique=bool(unique), handles=handles)