"""
The Bridge: the bot that sits in IRC channels and relays them to Slack.

It owns the identity map for as long as it runs, hands backend events
to its subscribers, and runs its backends.
"""

import functools
import logging
import typing
from typing import Any, List

import trio

from slackbridge.backend import Backend
from slackbridge.backends.irc import IRCConnection
from slackbridge.backends.slack import SlackClient
from slackbridge.config import BridgeConfig
from slackbridge.errors import BridgeBackendRefusedError
from slackbridge.gateway import BridgeGateway, ChannelGateway
from slackbridge.identity import IdentityMap
from slackbridge.narrator import ErrorReporter
from slackbridge.presence import PresenceTracker
from slackbridge.relay import MessageRelay
from slackbridge.subscriber import Subscriber

logger = logging.getLogger(__name__)


class Bridge:
    """
    Relays IRC channels to Slack, keeping track of who is who.
    """

    def __init__(
        self,
        name: str,
        identities: IdentityMap,
        gateway: ChannelGateway,
        backends: typing.Iterable[Backend] = (),
    ):
        """
        Arguments:
            name {str} -- A descriptive name for this bridge.
            identities {IdentityMap} -- The identity map, owned by this bridge.
            gateway {ChannelGateway} -- The outbound side, given to subscribers.

        Keyword Arguments:
            backends {Iterable[Backend]} -- Backends whose events to handle. (default: none)
        """

        self.name = name
        self.identities = identities
        self.gateway = gateway

        self.backends = []  # type: List[Backend]
        self.subscribers = []  # type: List[Subscriber]

        self.tracker = PresenceTracker(identities, gateway)
        self.relay = MessageRelay(identities, gateway)

        for subscriber in (self.tracker, self.relay, ErrorReporter(gateway)):
            self.register_subscriber(subscriber)

        for backend in backends:
            self.register_backend(backend)

    @classmethod
    def from_config(cls, config: BridgeConfig, name: str = "slackbridge") -> "Bridge":
        """Builds a bridge, and both its backends, from a configuration."""

        irc = IRCConnection(
            config.server,
            port=config.port,
            nickname=config.nick,
            username=config.username,
            realname=config.realname,
            passw=config.password,
            channels=config.channels.keys(),
            ssl_ctx=config.ssl_context(),
            lookup_timeout=config.lookup_timeout,
            throttle=config.flood_protection,
            cooldown_hertz=config.flood_protection_hertz,
        )
        slack = SlackClient(config.token)

        identities = IdentityMap(
            config.users, own_nickname=config.nick, own_account=config.username
        )
        gateway = BridgeGateway(irc, slack, config.channels, silent=config.silent)

        bridge = cls(name, identities, gateway, [irc])
        bridge.backends.append(slack)

        return bridge

    def register_subscriber(self, subscriber: Subscriber):
        """
        Registers an individual subscriber.

        Arguments:
            subscriber {Subscriber} -- Will be handed every event it handles.
        """

        self.subscribers.append(subscriber)
        subscriber.registered(self)

    def register_backend(self, backend: Backend, required: bool = False):
        """
        Registers an individual backend, whose events will be
        dispatched to this bridge's subscribers.

        Arguments:
            backend {Backend} -- A single backend to register to this bridge.

        Keyword Arguments:
            required {bool} --  Whether the Backend refusing to be registered should raise
                                an exception; see Backend.pre_bot_register.
        """

        if not backend.pre_bot_register(self):
            self.backends.append(backend)
            backend.listen_all()(functools.partial(self._specific_on_relay, backend))
            backend.post_bot_register(self)

        elif required:
            raise BridgeBackendRefusedError(
                "Backend", backend, "refused to be registered by bridge", self
            )

    async def _specific_on_relay(self, which: Backend, kind: str, data: Any):
        for subscriber in self.subscribers:
            await subscriber.dispatch(which, kind, data)

    async def start(self):
        """Starts this Bridge by starting its backends, and runs until they stop."""

        logger.info("Starting %r", self)

        async with trio.open_nursery() as nursery:
            self.tracker.nursery = nursery

            async def _run(backend: Backend):
                await backend.start()

                # Without either side there is nothing left to bridge.
                logger.info("%r stopped, stopping %r", backend, self)
                nursery.cancel_scope.cancel()

            for backend in self.backends:
                nursery.start_soon(_run, backend)

        self.tracker.nursery = None

    async def stop(self):
        """Stops this Bridge by stopping its backends."""

        async with trio.open_nursery() as nursery:
            for backend in self.backends:
                nursery.start_soon(backend.stop)

        self.tracker.nursery = None

    def __repr__(self):
        return "{}('{}': {} backends)".format(
            type(self).__name__, self.name, len(self.backends)
        )
