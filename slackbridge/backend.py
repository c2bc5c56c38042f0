"""
The Backend class.

The base class of all slackbridge backends is here defined.
"""

import contextlib
import logging
import queue
import typing
from typing import Any, Callable, Dict, Optional, Set

import trio


class Backend:
    """
    Dummy backend implementation superclass.

    Actual backends are supposed to subclass the Backend class, which
    nonetheless provides several utilities, including those which are expected
    (and thus required) by the Bridge that will eventually use it.
    """

    def __init__(self):
        self._listeners = {}  # type: Dict[str, Set[Callable]]
        self._global_listeners = set()  # type: Set[Callable]

        self.stop_scopes = set()  # type: Set[trio.CancelScope]

    def listen(self, name: str = "_"):
        """Adds a listener for specific messages received in this backend.
        Use as a decorator generating method.

        Keyword Arguments:
            name {str} -- The name of the event to listen for (default: {'_'})

        Returns:
            function -- The decorator method.
        """

        def _decorator(func):
            self._listeners.setdefault(name, set()).add(func)
            return func

        return _decorator

    def listen_all(self):
        """Adds a listener for all messages received in this backend.
        Use as a decorator generating method.

        Returns:
            function -- The decorator method.
        """

        def _decorator(func):
            self._global_listeners.add(func)
            return func

        return _decorator

    async def receive_message(self, kind: str, data: Any):
        """Call this function whenever a message is received in this backend.
        Used either by subclasses or to 'simulate' messages.

            >>> import trio
            >>> dummy_backend = Backend()
            ...
            >>> @dummy_backend.listen('JOINED')
            ... async def joined(kind, data):
            ...     print('{} joined'.format(data))
            ...
            >>> trio.run(dummy_backend.receive_message, 'JOINED', 'alice')
            alice joined
            >>> trio.run(dummy_backend.receive_message, 'RENAMED', 'bob')

        Arguments:
            kind {str} -- The kind of message (aka name argument in listen).
            data {any} -- The message's data.
        """

        lists = self._listeners.get(kind, set()) | self._global_listeners

        for listener in lists:
            await listener(kind, data)

    async def start(self):
        """Starts the backend."""

        raise NotImplementedError("Please subclass and implement!")

    async def stop(self):
        """Stops the backend."""

        raise NotImplementedError("Please subclass and implement!")

    def post_bot_register(self, bridge):
        """
        Called after a Bridge registers this Backend.

        Arguments:
            bridge {slackbridge.bot.Bridge}: The Bridge that registers this Backend.
        """

    def pre_bot_register(self, bridge):
        """
        Called when a Bridge attempts to register this Backend; more
        precisely, before it actually does so.

        This backend may use this function to cancel the registering,
        simply by returning a value that has a boolean value of True
        (bool(x) is True).

        Arguments:
            bridge {slackbridge.bot.Bridge}: The Bridge that wants to register this Backend.
        """
        return False

    @contextlib.contextmanager
    def stop_scope(self):
        """A Trio cancel scope which is cancelled when the backend is stopped.

        Returns:
            trio.CancelScope -- The stop scope, already entered.
        """

        scope = trio.CancelScope()
        self.stop_scopes.add(scope)

        try:
            with scope:
                yield scope

        finally:
            self.stop_scopes.discard(scope)


class ThrottledBackend(Backend):
    """
    A backend with an outgoing queue, drained by a sender loop that
    throttles itself once too much was sent in a short while.
    """

    # Names of extra async methods to run in the backend's nursery.
    start_funcs = []  # type: typing.ClassVar[typing.List[str]]

    def __init__(
        self,
        cooldown_hertz: float = 1.2,
        max_heat: int = 5,
        throttle: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        super().__init__()

        self.out_queue = queue.Queue()  # type: queue.Queue
        self.heat = 0
        self.max_heat = max_heat
        self.cooldown_hertz = cooldown_hertz
        self.throttle = throttle
        self.logger = logger or logging.getLogger(type(self).__module__)

        self._running = False
        self._stopping = False

    def running(self) -> bool:
        """Returns whether this backend is still up and running.

        Returns:
            bool -- Self-explanatory.
        """

        return self._running and not self._stopping

    async def _cooldown(self):
        """
        This async loop is responsible for 'cooling' the backend
        down, at a specified frequency. It's part of the
        throttling mechanism.
        """

        if self.throttle:
            with self.stop_scope():
                while self.running():
                    self.heat = max(self.heat - 1, 0)

                    await trio.sleep(1 / self.cooldown_hertz)

    def send_sync(self, item: Any):
        """
        Queues a backend-specific item to be sent, without waiting for
        it to go out.

        Arguments:
            item {any} -- The item to send.
        """

        self.out_queue.put((item, None))

    async def send(self, item: Any):
        """
        Queues a backend-specific item to be sent, and waits
        until it has been.

        Arguments:
            item {any} -- The item to send.
        """

        sent = trio.Event()
        self.out_queue.put((item, sent))

        with self.stop_scope():
            await sent.wait()

    async def _sender(self):
        """
        This async loop is responsible for sending messages,
        handling throttling, and other similar things.
        """

        with self.stop_scope():
            while self.running():
                while not self.out_queue.empty():
                    if self.throttle:
                        self.heat += 1

                        if self.heat > self.max_heat:
                            break

                    item, sent = self.out_queue.get()

                    await self._send(item)

                    if sent is not None:
                        sent.set()

                    await self.receive_message("_SENT", item)

                if self.heat > self.max_heat and self.throttle:
                    while self.heat and self.running():
                        await trio.sleep(0.2)

                else:
                    await trio.sleep(0.05)

    async def _send(self, item: Any):
        """Underlying method that sends an item through the Backend."""

        raise NotImplementedError("Please subclass and implement!")

    async def connect(self):
        """Opens whatever the backend needs before its loops start."""

    async def gracefully_close(self):
        """Perform graceful closure operations."""

    async def start(self):
        """
        Starts the backend, and runs it until it is stopped.
        """

        await self.connect()
        self._running = True

        try:
            async with trio.open_nursery() as nursery:
                nursery.start_soon(self._cooldown)
                nursery.start_soon(self._sender)

                for func_name in self.start_funcs:
                    nursery.start_soon(getattr(self, func_name))

        finally:
            self._running = False

    async def stop(self):
        """Asks this Backend to stop gracefully."""

        if not self.running():
            return False

        self._stopping = True

        for scope in list(self.stop_scopes):
            scope.cancel()

        await self.gracefully_close()

        self._running = False
        self._stopping = False

        return True
