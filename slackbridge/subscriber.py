"""
Subscribers are the parts of the bridge that react to backend events.
"""

import typing

import slackbridge


class Subscriber:
    """
    The base Subscriber superclass. Supposed to be subclassed.

    Subscribers are registered by the Bridge, which hands them every
    event whose kind they handle, by calling their on_<kind> method
    (e.g. on_roster for ROSTER events).
    """

    kinds = frozenset()  # type: typing.FrozenSet[str]

    def handles(self, kind: str) -> bool:
        """
        Whether this subscriber wants events of a given kind.

            >>> class Greeter(Subscriber):
            ...     kinds = frozenset({'JOINED'})
            >>> Greeter().handles('JOINED'), Greeter().handles('MESSAGE')
            (True, False)

        Arguments:
            kind {str} -- The kind of backend event.
        """

        return kind in self.kinds

    async def dispatch(self, backend: "slackbridge.backend.Backend", kind: str, data: typing.Any):
        """
        Calls the on_<kind> handler of this subscriber, if it handles
        the event at all.

        Arguments:
            backend {slackbridge.backend.Backend} -- The backend that caused this event.

            kind {str} -- The kind of backend event.
            data {any} -- The data of this backend event.
        """

        if not self.handles(kind):
            return

        handler = getattr(self, "on_{}".format(kind.lower()), None)

        if handler is not None:
            await handler(backend, data)

    def registered(self, bridge: "slackbridge.bot.Bridge"):
        """Ran when this subscriber is registered."""
