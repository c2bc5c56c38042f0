"""
Relays IRC channel messages to Slack, turning nicknames into Slack
mentions along the way.
"""

import logging
import re
import typing

from slackbridge import events
from slackbridge.backend import Backend
from slackbridge.gateway import ChannelGateway
from slackbridge.identity import IdentityMap
from slackbridge.subscriber import Subscriber

logger = logging.getLogger(__name__)


def prepare_message(message: str, bindings: typing.Sequence[typing.Tuple[str, str]]) -> str:
    """Replaces every nickname in a message with a Slack @mention.

    Matching is literal and case-sensitive, and done in a single pass,
    so mentions that were just inserted are never matched again. Where
    nicknames overlap, the first one in bindings wins.

        >>> prepare_message('hey alice, ask al', [('alice', 'alice.s'), ('al', 'al.b')])
        'hey @alice.s, ask @al.b'

    Arguments:
        message {str} -- The IRC message.
        bindings {Sequence[Tuple[str, str]]} -- Nickname and Slack user pairs.

    Returns:
        str -- The message, ready for Slack.
    """

    bindings = [(nickname, mapped) for nickname, mapped in bindings if nickname in message]

    if not bindings:
        return message

    mentions = dict(bindings)
    pattern = re.compile("|".join(re.escape(nickname) for nickname, _ in bindings))

    return pattern.sub(lambda match: "@" + mentions[match.group(0)], message)


class MessageRelay(Subscriber):
    """Forwards every channel message to its Slack channel."""

    kinds = frozenset({events.MESSAGE})

    def __init__(self, identities: IdentityMap, gateway: ChannelGateway):
        self.identities = identities
        self.gateway = gateway

    def relay(self, nickname: str, channel: str, text: str) -> bool:
        """
        Posts an IRC message to Slack, as the Slack user of whoever
        wrote it.

        Arguments:
            nickname {str} -- Who wrote the message.
            channel {str} -- The IRC channel it was written in.
            text {str} -- The message.

        Returns:
            bool -- Whether the channel is bridged at all; the post
                    itself is not waited for.
        """

        slack_channel = self.gateway.slack_channel(channel)

        if slack_channel is None:
            logger.debug("Not relaying message from %s to unbridged %s", nickname, channel)
            return False

        mapped = self.identities.mapped_for_nickname(nickname)

        self.gateway.post(
            slack_channel,
            prepare_message(text, self.identities.bindings()),
            "@" + mapped if mapped is not None else nickname,
            parse="full",
            link_names=True,
            unfurl_links=True,
        )

        return True

    async def on_message(self, which: Backend, event: events.ChatMessage):
        self.relay(event.nickname, event.channel, event.text)
