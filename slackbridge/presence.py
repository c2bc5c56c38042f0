"""
Presence tracking.

Learns which account is behind each nickname from what happens in the
bridged channels (joining them, people joining, people renaming), and
keeps the identity map's nickname side current.

Every nickname goes through a small state machine:

    unknown -> resolving -> resolved
                         -> unresolved

A lookup carries a token. When it completes, its result is applied to
whichever nickname holds that token at that point, so a rename during
the lookup moves the pending result along with the nickname, while a
newer join or lookup for the nickname makes the old result stale.
"""

import logging
import typing
import uuid
from typing import Dict, Literal, Optional

import attr
import trio

from slackbridge import events
from slackbridge.backend import Backend
from slackbridge.gateway import ChannelGateway
from slackbridge.identity import IdentityMap
from slackbridge.subscriber import Subscriber

Status = Literal["unknown", "resolving", "resolved", "unresolved"]

ROSTER_GREETING = "I'm all over you slackers"
JOIN_GREETING = "i'm watching you slacker {}"
RENAME_NOTICE = "don't think you can hide slacker {}"

logger = logging.getLogger(__name__)


@attr.s(auto_attribs=True)
class Resolution:
    """Where a nickname is in the resolution state machine."""

    nickname: str
    status: Status = "unknown"
    token: uuid.UUID = attr.Factory(uuid.uuid4)


class PresenceTracker(Subscriber):
    """Maintains the nickname side of an IdentityMap."""

    kinds = frozenset({events.ROSTER, events.JOINED, events.RENAMED})

    def __init__(self, identities: IdentityMap, gateway: ChannelGateway):
        """
        Arguments:
            identities {IdentityMap} -- The identity map to maintain.
            gateway {ChannelGateway} -- Where to look accounts up, and to speak.
        """

        self.identities = identities
        self.gateway = gateway

        # Roster lookups run here, so that the event which started them
        # does not hold up the delivery of their replies.
        self.nursery = None  # type: Optional[trio.Nursery]

        self.resolutions = {}  # type: Dict[str, Resolution]

    def status(self, nickname: str) -> Status:
        """The resolution status of a nickname.

            >>> tracker = PresenceTracker(IdentityMap(), None)
            >>> tracker.status('alice')
            'unknown'
        """

        resolution = self.resolutions.get(nickname)
        return resolution.status if resolution else "unknown"

    def is_own(self, nickname: str, account: Optional[str] = None) -> bool:
        """Whether a nickname or account is the bot itself."""

        if nickname == self.gateway.nickname:
            return True

        return self.identities.is_own(nickname, account)

    def mention(self, nickname: str) -> str:
        """How to refer to a nickname on IRC: its Slack user, or itself."""

        mapped = self.identities.mapped_for_nickname(nickname)

        if mapped is None:
            return nickname

        return "@" + mapped

    # === Resolution ===

    def _settle(self, nickname: str, account: Optional[str]) -> Resolution:
        """Binds a nickname, and marks it as resolved (or not)."""

        resolution = Resolution(nickname, "resolved" if account else "unresolved")
        self.resolutions[nickname] = resolution
        self.identities.bind_nickname(nickname, account)

        return resolution

    def _holder_of(self, token: uuid.UUID) -> Optional[Resolution]:
        for resolution in self.resolutions.values():
            if resolution.token == token:
                return resolution

        return None

    async def resolve(self, nickname: str) -> Status:
        """Looks up the account behind a nickname, and binds it.

        Arguments:
            nickname {str} -- The nickname to resolve.

        Returns:
            Status -- What the nickname holding the lookup ended up as,
                      or 'unknown' if the result went stale.
        """

        pending = Resolution(nickname, "resolving")
        self.resolutions[nickname] = pending

        result = await self.gateway.lookup_account(nickname)
        holder = self._holder_of(pending.token)

        if holder is None or holder.status != "resolving":
            logger.debug("Dropping stale lookup of %s: %s", nickname, result)
            return "unknown"

        if isinstance(result, events.Resolved):
            account = result.account.user

            if self.is_own(holder.nickname, account):
                del self.resolutions[holder.nickname]
                return "unknown"

            return self._settle(holder.nickname, account).status

        if isinstance(result, events.LookupFailed):
            logger.info("Could not look up %s: %s", nickname, result.reason)

        return self._settle(holder.nickname, None).status

    # === Events ===

    async def track_roster(self, channel: str, nicknames: typing.Iterable[str]):
        """Resolves every nickname in a channel, then greets the channel.

        Arguments:
            channel {str} -- The channel.
            nicknames {Iterable[str]} -- Everyone in it.
        """

        async with trio.open_nursery() as nursery:
            for nickname in nicknames:
                if not self.is_own(nickname):
                    nursery.start_soon(self.resolve, nickname)

        self.gateway.say(channel, ROSTER_GREETING)

    async def on_roster(self, which: Backend, event: events.Roster):
        if self.nursery is not None:
            self.nursery.start_soon(self.track_roster, event.channel, event.nicknames)

        else:
            await self.track_roster(event.channel, event.nicknames)

    async def on_joined(self, which: Backend, event: events.Joined):
        account = event.account.user

        if self.is_own(event.nickname, account):
            return

        if account:
            self._settle(event.nickname, account)

        elif self.nursery is not None:
            # No ident in the JOIN prefix; ask the server instead.
            self.nursery.start_soon(self.resolve, event.nickname)

        self.gateway.grant_privilege(event.channel, event.nickname)
        self.gateway.say(event.channel, JOIN_GREETING.format(self.mention(event.nickname)))

    async def on_renamed(self, which: Backend, event: events.Renamed):
        old, new = event.old_nickname, event.new_nickname

        if self.is_own(new) or self.is_own(old):
            return

        self.identities.rename_nickname(old, new)

        resolution = self.resolutions.pop(old, None)

        if resolution is None:
            resolution = Resolution(new, "unresolved")

        resolution.nickname = new
        self.resolutions[new] = resolution

        for channel in event.channels:
            self.gateway.say(channel, RENAME_NOTICE.format(self.mention(new)))
