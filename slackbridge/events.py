"""
Events emitted by the IRC backend, and the results of account lookups.

Backends emit these through Backend.receive_message, under the kind
names listed in EVENT_KINDS; subscribers pick them up by kind.
"""

import typing
from typing import Optional, Union

import attr


ROSTER = "ROSTER"
JOINED = "JOINED"
RENAMED = "RENAMED"
MESSAGE = "MESSAGE"
TRANSPORT_ERROR = "TRANSPORT_ERROR"

EVENT_KINDS = frozenset({ROSTER, JOINED, RENAMED, MESSAGE, TRANSPORT_ERROR})


@attr.s(auto_attribs=True, frozen=True)
class AccountInfo:
    """
    What the IRC server told us about whoever is behind a nickname.

    The user field (the ident, e.g. '~alice') is the account key that
    identities are keyed on; it may be None when the server did not
    disclose it.
    """

    nickname: str
    user: Optional[str] = None
    host: Optional[str] = None
    realname: Optional[str] = None

    @classmethod
    def from_prefix(cls, prefix: str) -> "AccountInfo":
        """Builds an AccountInfo from a 'nick!user@host' message prefix.

            >>> AccountInfo.from_prefix('alice!~alice@example.org').user
            '~alice'

            >>> print(AccountInfo.from_prefix('alice').user)
            None
        """

        if "!" not in prefix:
            return cls(prefix)

        nickname, rest = prefix.split("!", 1)

        if "@" in rest:
            user, host = rest.split("@", 1)

        else:
            user, host = rest, None

        return cls(nickname, user or None, host)


# === Events ===


@attr.s(auto_attribs=True, frozen=True)
class Roster:
    """The full member list of a channel, as sent after joining it."""

    channel: str
    nicknames: typing.Tuple[str, ...] = attr.ib(converter=tuple)


@attr.s(auto_attribs=True, frozen=True)
class Joined:
    """Someone joined a channel."""

    channel: str
    nickname: str
    account: AccountInfo


@attr.s(auto_attribs=True, frozen=True)
class Renamed:
    """Someone changed nickname; channels lists where it was seen."""

    old_nickname: str
    new_nickname: str
    channels: typing.Tuple[str, ...] = attr.ib(converter=tuple)


@attr.s(auto_attribs=True, frozen=True)
class ChatMessage:
    """A PRIVMSG; channel is the target, which may be the bot itself."""

    nickname: str
    channel: str
    text: str


@attr.s(auto_attribs=True, frozen=True)
class TransportError:
    """An error numeric sent by the server."""

    channel: str
    message: str
    code: Optional[int] = None


# === Account lookup results ===


@attr.s(auto_attribs=True, frozen=True)
class Resolved:
    account: AccountInfo


@attr.s(auto_attribs=True, frozen=True)
class NotFound:
    nickname: str


@attr.s(auto_attribs=True, frozen=True)
class LookupFailed:
    nickname: str
    reason: str


LookupResult = Union[Resolved, NotFound, LookupFailed]
