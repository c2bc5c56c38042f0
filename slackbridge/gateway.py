"""
The channel gateway: everything the bridge core may ask of the outside
world, and its implementation over an IRC and a Slack backend.
"""

import logging
import typing
from typing import Mapping, Optional

from slackbridge import events
from slackbridge.backends.irc import IRCConnection
from slackbridge.backends.slack import SlackClient

logger = logging.getLogger(__name__)


class ChannelGateway(typing.Protocol):
    """
    The outbound side of the bridge, as seen by its subscribers.

    Every method but lookup_account is fire-and-forget: it queues its
    work and returns immediately, and failures are the transport's to
    log.
    """

    nickname: str

    def say(self, channel: str, text: str):
        """Says something in an IRC channel, unless the bridge is silent."""
        ...

    def grant_privilege(self, channel: str, nickname: str):
        """Asks for channel operator status to be given to a nickname."""
        ...

    async def lookup_account(self, nickname: str) -> events.LookupResult:
        """Finds out which account is behind a nickname."""
        ...

    def slack_channel(self, channel: str) -> Optional[str]:
        """Returns the Slack channel an IRC channel is bridged to, if any."""
        ...

    def post(self, channel: str, text: str, as_username: str, **flags):
        """Posts to a Slack channel."""
        ...


class BridgeGateway:
    """A ChannelGateway over an IRCConnection and a SlackClient."""

    def __init__(
        self,
        irc: IRCConnection,
        slack: SlackClient,
        channels: Mapping[str, str],
        silent: bool = False,
    ):
        """
        Arguments:
            irc {IRCConnection} -- The IRC side.
            slack {SlackClient} -- The Slack side.
            channels {Mapping[str, str]} -- IRC channel to Slack channel.

        Keyword Arguments:
            silent {bool} -- Whether to never speak on IRC. (default: False)
        """

        self.irc = irc
        self.slack = slack
        self.channels = dict(channels)
        self.silent = silent

    @property
    def nickname(self) -> str:
        return self.irc.nickname

    def say(self, channel: str, text: str):
        if self.silent:
            logger.debug("Silently not saying to %s: %s", channel, text)
            return

        self.irc.message_sync(channel, text)

    def grant_privilege(self, channel: str, nickname: str):
        self.irc.mode_sync(channel, "+o", nickname)

    async def lookup_account(self, nickname: str) -> events.LookupResult:
        return await self.irc.lookup_account(nickname)

    def slack_channel(self, channel: str) -> Optional[str]:
        if channel in self.channels:
            return self.channels[channel]

        # IRC channel names are case-insensitive
        for irc_channel, slack_channel in self.channels.items():
            if irc_channel.lower() == channel.lower():
                return slack_channel

        return None

    def post(self, channel: str, text: str, as_username: str, **flags):
        self.slack.post(channel, text, as_username, **flags)
