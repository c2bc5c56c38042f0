"""
Speaks server errors back into the channel they concern, in the bot's
own voice.
"""

import logging

from slackbridge import events
from slackbridge.backend import Backend
from slackbridge.gateway import ChannelGateway
from slackbridge.subscriber import Subscriber

CHANNEL_PREFIXES = "#&+!"

# ERR_CANNOTSENDTOCHAN and ERR_NOTONCHANNEL: saying anything about these
# into the channel would only fail the same way again.
UNSPEAKABLE = frozenset({404, 442})

PRONOUNS = {
    "you": "i",
    "you're": "i'm",
    "your": "my",
    "yours": "mine",
    "yourself": "myself",
    "you've": "i've",
    "you'll": "i'll",
    "you'd": "i'd",
}

logger = logging.getLogger(__name__)


def narrate(message: str) -> str:
    """Turns an error message addressed to the bot into one the bot says
    about itself.

        >>> narrate("You're not on that channel")
        "i'm not on that channel"
        >>> narrate('you broke it')
        'i broke it'

    Arguments:
        message {str} -- The error text, as sent by the server.

    Returns:
        str -- The same text, with second-person pronouns made first-person.
    """

    return " ".join(PRONOUNS.get(word.lower(), word) for word in message.split())


class ErrorReporter(Subscriber):
    """Reports transport errors into the affected channel."""

    kinds = frozenset({events.TRANSPORT_ERROR})

    def __init__(self, gateway: ChannelGateway):
        self.gateway = gateway

    async def on_transport_error(self, which: Backend, event: events.TransportError):
        if (
            not event.channel
            or event.channel[0] not in CHANNEL_PREFIXES
            or event.code in UNSPEAKABLE
        ):
            logger.warning("Server error %s: %s", event.code, event.message)
            return

        self.gateway.say(
            event.channel,
            "I don't feel so well because {}".format(narrate(event.message)),
        )
