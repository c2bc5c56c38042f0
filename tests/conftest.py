import typing

import attr
import pytest
import trio

from slackbridge import events
from slackbridge.identity import IdentityMap
from slackbridge.presence import PresenceTracker
from slackbridge.relay import MessageRelay


@attr.s(auto_attribs=True)
class Post:
    channel: str
    text: str
    as_username: str
    flags: typing.Dict[str, typing.Any]


class FakeGateway:
    """Records everything the core asks of the outside world."""

    def __init__(self, accounts=None, nickname="slckbt", channels=None):
        self.nickname = nickname
        self.accounts = dict(accounts or {})
        self.channels = dict(channels or {"#general": "#irc-general", "#dev": "#irc-dev"})

        self.said = []
        self.granted = []
        self.posts = []
        self.lookups = []

        # nickname -> trio.Event; lookups of these wait until it is set
        self.gates = {}

    def say(self, channel, text):
        self.said.append((channel, text))

    def grant_privilege(self, channel, nickname):
        self.granted.append((channel, nickname))

    async def lookup_account(self, nickname):
        self.lookups.append(nickname)

        if nickname in self.gates:
            await self.gates[nickname].wait()

        await trio.sleep(0)

        user = self.accounts.get(nickname)

        if user is None:
            return events.NotFound(nickname)

        if user is False:
            return events.LookupFailed(nickname, "WHOIS timed out")

        return events.Resolved(events.AccountInfo(nickname, user, "example.org"))

    def slack_channel(self, channel):
        return self.channels.get(channel)

    def post(self, channel, text, as_username, **flags):
        self.posts.append(Post(channel, text, as_username, flags))


@pytest.fixture
def identities():
    return IdentityMap(
        {"alice": "alice.s", "~bob": "bob.b", "carol": "carol.c"},
        own_nickname="slckbt",
        own_account="slckbt",
    )


@pytest.fixture
def gateway():
    return FakeGateway(
        accounts={"alice": "~alice", "bob": "~bob", "carol": "carol", "slckbt": "~slckbt"}
    )


@pytest.fixture
def tracker(identities, gateway):
    return PresenceTracker(identities, gateway)


@pytest.fixture
def relay(identities, gateway):
    return MessageRelay(identities, gateway)
