"""Delta queries: which remote messages are new since the last sync."""

from dataclasses import dataclass

from releveur.sync.codec import UID_MAX, Cursor


@dataclass(frozen=True)
class AllMessages:
    """Every message currently in the mailbox."""

    def criteria(self) -> list[str]:
        return ["ALL"]


@dataclass(frozen=True)
class UidRange:
    """Messages whose UID lies in [lower, upper].

    The upper bound is spelled out instead of using "*": for "n:*" IMAP
    servers return the highest UID even when it is below n.
    """

    lower: int
    upper: int = UID_MAX

    @property
    def exhausted(self) -> bool:
        """True when the lower bound wrapped past the last possible UID.

        UID 0 is never assigned, so such a range cannot match anything
        new and is not sent to the server.
        """
        return self.lower == 0

    def criteria(self) -> list[str]:
        return ["UID", f"{self.lower}:{self.upper}"]


Query = AllMessages | UidRange


def resolve(cursor: Cursor | None) -> Query:
    """Build the query for messages not yet stored locally.

    With a cursor, the query starts right after its last UID (wrapping at
    2^32, like UID arithmetic on the server). Without one there is no
    reference point, so every message is requested.
    """
    if cursor is None or cursor.last_uid is None:
        return AllMessages()

    return UidRange(lower=(cursor.last_uid + 1) & UID_MAX)
