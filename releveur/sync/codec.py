"""Binary layout of the per-mailbox cursor marker.

The marker is exactly 8 bytes:

    offset 0-3  UIDVALIDITY        (unsigned 32-bit, little-endian)
    offset 4-7  last synced UID    (unsigned 32-bit, little-endian)

A mailbox that was never synchronized has no marker at all, so a cursor
is only ever encoded once it holds a UID.
"""

import struct
from dataclasses import dataclass

from releveur.errors import CursorFormatError

CURSOR_FORMAT = struct.Struct("<II")
CURSOR_SIZE = CURSOR_FORMAT.size

UID_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class Cursor:
    """Sync progress for one mailbox.

    Attributes:
        uid_validity: UIDVALIDITY the UIDs below belong to.
        last_uid: Every message with a UID up to and including this one
            is stored locally. None means nothing was synchronized yet.
    """

    uid_validity: int
    last_uid: int | None = None


def _check_u32(name: str, value: int) -> None:
    if not 0 <= value <= UID_MAX:
        raise ValueError(f"{name} out of 32-bit range: {value}")


def encode(cursor: Cursor) -> bytes:
    """Encode a cursor to its 8-byte marker form.

    Raises:
        ValueError: If the cursor has no last UID or a value does not
            fit in 32 bits.
    """
    if cursor.last_uid is None:
        raise ValueError("cannot encode a cursor without a last UID")

    _check_u32("uid_validity", cursor.uid_validity)
    _check_u32("last_uid", cursor.last_uid)
    return CURSOR_FORMAT.pack(cursor.uid_validity, cursor.last_uid)


def decode(data: bytes) -> Cursor:
    """Decode an 8-byte marker.

    Raises:
        CursorFormatError: If ``data`` is not exactly 8 bytes long.
    """
    if len(data) != CURSOR_SIZE:
        raise CursorFormatError(len(data), CURSOR_SIZE)

    uid_validity, last_uid = CURSOR_FORMAT.unpack(data)
    return Cursor(uid_validity=uid_validity, last_uid=last_uid)
