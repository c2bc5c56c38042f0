"""
The IRC backend.

Use with great care, as IRC networks can be
rather rigid with client behavior, which includes throttling
(and is why throttling is by default enabled).
"""

import ssl
import typing
from typing import Dict, Iterable, List, Optional, Set, Tuple

import attr
import trio

from slackbridge import events
from slackbridge.backend import ThrottledBackend

NAMES_PREFIXES = "~&@%+"

RPL_WELCOME = 1
RPL_WHOISUSER = 311
RPL_ENDOFWHOIS = 318
RPL_NAMREPLY = 353
RPL_ENDOFNAMES = 366
ERR_NOSUCHNICK = 401
ERR_ERRONEUSNICKNAME = 432
ERR_NICKNAMEINUSE = 433

# How many alternative nicknames to try while registering.
MAX_NICK_ATTEMPTS = 10

WHOIS_NUMERICS = frozenset({RPL_WHOISUSER, RPL_ENDOFWHOIS, ERR_NOSUCHNICK})


@attr.s(auto_attribs=True)
class IRCResponse:
    line: str
    origin: str
    is_numeric: bool
    kind: typing.Union[str, int]
    args: Tuple[str, ...] = ()
    data: str = ""

    def __repr__(self):
        return "IRCResponse({})".format(repr(self.line))

    @property
    def nickname(self) -> str:
        """The nickname part of the origin."""
        return self.origin.split("!")[0]

    @staticmethod
    def lex(resp: str) -> Tuple[str, str, typing.Union[str, int], bool, Tuple[str, ...], str]:
        """Splits a single IRC response line into its constituent parts."""

        if resp.startswith("@"):
            # IRCv3 message tags
            resp = resp.split(" ", 1)[1] if " " in resp else ""

        if resp.startswith(":"):
            origin, _, resp = resp[1:].partition(" ")

        else:
            origin = ""

        if " :" in resp:
            head, dataline = resp.split(" :", 1)

        elif resp.startswith(":"):
            head, dataline = "", resp[1:]

        else:
            head, dataline = resp, ""

        tokens = head.split()
        kind = tokens[0] if tokens else ""

        if kind.isdigit() and len(kind) == 3:
            kind = int(kind)
            is_numeric = True

        else:
            kind = kind.upper()
            is_numeric = False

        return (resp, origin, kind, is_numeric, tuple(tokens[1:]), dataline)

    @classmethod
    def parse(cls, resp: str) -> "IRCResponse":
        """Parses an IRC server response, according to RFC 1459.

            >>> IRCResponse.parse(':zirconium.libera.chat 404 :Not Found').kind
            404

            >>> print(IRCResponse.parse(':zirconium.libera.chat IS okay :a Good Word').args[0])
            okay

            >>> IRCResponse.parse(':alice!~alice@host NICK :alicia').data
            'alicia'

        Arguments:
            resp {str} -- The IRC response to parse.

        Returns:
            IRCResponse -- The parsed representation.
        """

        _, origin, kind, is_numeric, args, data = cls.lex(resp)
        return cls(resp, origin, is_numeric, kind, args, data)


@attr.s(auto_attribs=True)
class PendingLookup:
    """A WHOIS that is waiting for the server to finish answering."""

    nickname: str
    done: trio.Event = attr.Factory(trio.Event)
    account: Optional[events.AccountInfo] = None

    def result(self) -> events.LookupResult:
        if self.account is None:
            return events.NotFound(self.nickname)

        return events.Resolved(self.account)


@attr.s(auto_attribs=True)
class IRCRecordStorage:
    """
    IRC state tracking.

    IRC is a stateless protocol; keeping the state
    is a client software responsibility. Only what the
    bridge needs is kept: who is in which channel, and the
    NAMES replies still being received.
    """

    members: Dict[str, Set[str]] = attr.Factory(dict)
    names_buffer: Dict[str, List[str]] = attr.Factory(dict)

    def add_names(self, channel: str, names: Iterable[str]):
        """Handles a single RPL_NAMREPLY line."""

        buffer = self.names_buffer.setdefault(channel, [])

        for name in names:
            nick = name.lstrip(NAMES_PREFIXES)

            if nick and nick not in buffer:
                buffer.append(nick)

    def finish_names(self, channel: str) -> List[str]:
        """Handles RPL_ENDOFNAMES; returns the channel's full member list."""

        nicks = self.names_buffer.pop(channel, [])
        self.members[channel] = set(nicks)

        return nicks

    def handle_join(self, channel: str, nick: str):
        self.members.setdefault(channel, set()).add(nick)

    def handle_part(self, channel: str, nick: str, is_self: bool = False):
        if is_self:
            self.members.pop(channel, None)

        else:
            self.members.get(channel, set()).discard(nick)

    def handle_quit(self, nick: str) -> List[str]:
        channels = self.channels_of(nick)

        for channel in channels:
            self.members[channel].discard(nick)

        return channels

    def handle_nick(self, prevname: str, newname: str) -> List[str]:
        """Handles an IRC NICK event; returns the channels it was seen in."""

        channels = self.channels_of(prevname)

        for channel in channels:
            self.members[channel].discard(prevname)
            self.members[channel].add(newname)

        return channels

    def channels_of(self, nick: str) -> List[str]:
        return sorted(
            channel for channel, members in self.members.items() if nick in members
        )


class IRCConnection(ThrottledBackend):
    """An IRC connection. Emits the bridge's presence and message
    events, and answers account lookups with WHOIS.
    """

    start_funcs = ["_receiver", "send_irc_handshake"]

    def __init__(
        self,
        host: str,
        port: int = 6667,
        nickname: str = "slckbt",
        username: str = "slckbt",
        realname: str = "slackbridge",
        passw: Optional[str] = None,
        channels: Iterable[str] = (),
        ssl_ctx: Optional[ssl.SSLContext] = None,
        lookup_timeout: float = 10.0,
        **kwargs
    ):
        """Sets up an IRC connection that can be used as
        a slackbridge backend.

            >>> conn = IRCConnection('abcd')
            >>> conn.heat
            0
            >>> print(conn.ssl_context)
            None

        Arguments:
            host {str} -- The host of the IRC server.

        Keyword Arguments:
            port {int} -- The port of the IRC server. (default: 6667)

            nickname {str} -- The nickname used by this connection. (default: 'slckbt')
            username {str} -- The IRC user name (ident) used by this connection.
                              (default: 'slckbt')

            realname {str} -- The IRC 'real name' used by this connection.
                              (default: 'slackbridge')

            passw {str} --  The IRC server password used by this connection, if any.
                            (default: None)

            channels {Iterable[str]} -- The channels to join after connecting. (default: ())

            ssl_ctx {ssl.SSLContext} -- The SSL context used (or None if not using any).
                                        (default: None)

            lookup_timeout {float} -- How long to wait for a WHOIS to complete. (default: 10.0)
        """

        super().__init__(**kwargs)

        self.host = host
        self.port = port
        self.ssl_context = ssl_ctx  # type: Optional[ssl.SSLContext]
        self.connection = None  # type: Optional[trio.abc.Stream]

        self.nickname = nickname
        self.base_nickname = nickname
        self.nick_attempts = 0
        self.username = username
        self.realname = realname
        self.passw = passw
        self.join_channels = set(channels)
        self.lookup_timeout = lookup_timeout

        self.records = IRCRecordStorage()
        self.lookups = {}  # type: Dict[str, PendingLookup]
        self.welcomed = trio.Event()

    async def connect(self):
        connection = await trio.open_tcp_stream(self.host, self.port)

        if self.ssl_context:
            connection = trio.SSLStream(
                connection, self.ssl_context, server_hostname=self.host
            )

        self.connection = connection

    async def _send(self, item: str):
        self.logger.debug(">> %s", item)
        await self.connection.send_all(str(item).encode("utf-8") + b"\r\n")

    async def _receive(self, line: str):
        """
        This function is called asynchronously everytime
        the IRC backend receives a response from the
        remote host (server).

        Arguments:
            line {str} --   A single line, after being extracted from received data, and
                            stripped of its trailing CRLF.
        """

        self.logger.debug("<< %s", line)
        await self.receive_message("_RAW", line)

        if line.split(" ")[0].upper() == "PING":
            self.send_sync("PONG " + " ".join(line.split(" ")[1:]))
            return

        response = IRCResponse.parse(line)

        if not response.kind:
            return

        if response.is_numeric:
            await self.receive_message("IRC__NUMERIC", response)
            await self._receive_numeric(response)

        else:
            await self.receive_message("IRC_" + response.kind, response)
            await self._receive_command(response)

    async def _receive_numeric(self, response: IRCResponse):
        code, args = response.kind, response.args

        if code == RPL_WELCOME:
            if args:
                self.nickname = args[0]

            self.welcomed.set()

        elif code == RPL_NAMREPLY and args:
            self.records.add_names(args[-1], response.data.split())

        elif code == RPL_ENDOFNAMES and len(args) > 1:
            nicks = self.records.finish_names(args[1])
            await self.receive_message(events.ROSTER, events.Roster(args[1], nicks))

        elif code in WHOIS_NUMERICS and len(args) > 1 and args[1].lower() in self.lookups:
            self._receive_whois(response)

        elif code in (ERR_ERRONEUSNICKNAME, ERR_NICKNAMEINUSE) and not self.welcomed.is_set():
            self._retry_nickname(response)

        elif 400 <= code < 600:
            channel = args[1] if len(args) > 1 else ""

            await self.receive_message(
                events.TRANSPORT_ERROR,
                events.TransportError(channel, response.data, code),
            )

    def _retry_nickname(self, response: IRCResponse):
        """Registers again under a numbered nickname, e.g. 'slckbt1',
        when the server refuses ours. Gives up and closes the connection
        after MAX_NICK_ATTEMPTS tries.
        """

        if self.nick_attempts >= MAX_NICK_ATTEMPTS:
            self.logger.error(
                "Server refused every nickname up to %s: %s", self.nickname, response.data
            )
            self._abandon()
            return

        self.nick_attempts += 1
        self.logger.warning("Nickname %s refused: %s", self.nickname, response.data)

        self.nickname = "{}{}".format(self.base_nickname, self.nick_attempts)
        self.send_sync("NICK " + self.nickname)

    def _abandon(self):
        self._running = False

        for scope in list(self.stop_scopes):
            scope.cancel()

    def _receive_whois(self, response: IRCResponse):
        code, args = response.kind, response.args
        key = args[1].lower()

        if code == RPL_WHOISUSER and len(args) > 3:
            self.lookups[key].account = events.AccountInfo(
                args[1], args[2], args[3], response.data
            )

        elif code in (RPL_ENDOFWHOIS, ERR_NOSUCHNICK):
            self.lookups.pop(key).done.set()

    async def _receive_command(self, response: IRCResponse):
        kind, nick = response.kind, response.nickname
        target = response.args[0] if response.args else response.data

        if kind == "PRIVMSG":
            await self.receive_message(
                events.MESSAGE, events.ChatMessage(nick, target, response.data)
            )

        elif kind == "JOIN":
            self.records.handle_join(target, nick)

            await self.receive_message(
                events.JOINED,
                events.Joined(target, nick, events.AccountInfo.from_prefix(response.origin)),
            )

        elif kind == "PART":
            self.records.handle_part(target, nick, is_self=nick == self.nickname)

        elif kind == "KICK" and len(response.args) > 1:
            kicked = response.args[1]
            self.records.handle_part(target, kicked, is_self=kicked == self.nickname)

        elif kind == "QUIT":
            self.records.handle_quit(nick)

        elif kind == "NICK":
            channels = self.records.handle_nick(nick, target)

            if nick == self.nickname:
                self.nickname = target

            await self.receive_message(
                events.RENAMED, events.Renamed(nick, target, channels)
            )

    async def _receiver(self):
        with self.stop_scope():
            buf = b""

            try:
                async for data in self.connection:
                    data = buf + data

                    # Decode whole lines only; a chunk may end mid-character.
                    while b"\n" in data:
                        line, data = data.split(b"\n", 1)
                        line = line.rstrip(b"\r").decode("utf-8", errors="replace")

                        if line:
                            await self._receive(line)

                    buf = data

            except (trio.BrokenResourceError, trio.ClosedResourceError):
                self.logger.warning("Connection to %s lost", self.host)

        if not self._stopping:
            self._abandon()

    async def send_irc_handshake(self):
        """
        Sends the IRC handshake, including
        nickname, user and real name, and optionally
        the server password, then joins the configured
        channels once the server has welcomed us.
        """

        with self.stop_scope():
            if self.passw:
                await self.send("PASS {}".format(self.passw))

            await self.send("NICK " + self.nickname.split(" ")[0])
            await self.send(
                "USER {} 0 * :{}".format(self.username.split(" ")[0], self.realname)
            )

            await self.welcomed.wait()

            for chan in sorted(self.join_channels):
                await self.join(chan)

            # Prevent joining the same channels again if the handshake
            # is ever sent again.
            self.join_channels = set()

    async def gracefully_close(self):
        if self.connection is not None:
            await self.connection.aclose()

    # === IRC commands ===

    async def join(self, channel: str, chan_pass: Optional[str] = None):
        """Joins an IRC channel

        Arguments:
            channel {str} -- The name of the channel.

        Keyword Arguments:
            chan_pass {Optional[str]} -- An optional channel password. (default: {None})
        """

        if chan_pass:
            await self.send("JOIN {} :{}".format(channel, chan_pass))

        else:
            await self.send("JOIN {}".format(channel))

    def _split_size(self, message: str):
        for line in message.splitlines():
            while line:
                yield line[:300]
                line = line[300:]

    async def message(self, target: str, message: str):
        """Sends a message to an IRC target (nickname or channel).

        Arguments:
            target {str} -- The IRC target. Can either be another client or a channel.
            message {str} -- The message.
        """

        for line in self._split_size(message):
            await self.send("PRIVMSG {} :{}".format(target, line))

    def message_sync(self, target: str, message: str):
        """Like message, but does not wait for the lines to go out."""

        for line in self._split_size(message):
            self.send_sync("PRIVMSG {} :{}".format(target, line))

    def mode_sync(self, channel: str, mode: str, nickname: str):
        """Queues a channel MODE change for a nickname, e.g. '+o'."""
        self.send_sync("MODE {} {} {}".format(channel, mode, nickname))

    async def lookup_account(self, nickname: str) -> events.LookupResult:
        """WHOIS a nickname, and wait for the server's answer.

        Concurrent lookups of the same nickname share a single WHOIS.

        Arguments:
            nickname {str} -- The nickname to look up.

        Returns:
            LookupResult -- Resolved, NotFound, or LookupFailed on timeout.
        """

        key = nickname.lower()
        pending = self.lookups.get(key)

        if pending is None:
            pending = self.lookups[key] = PendingLookup(nickname)
            self.send_sync("WHOIS {}".format(nickname))

        with trio.move_on_after(self.lookup_timeout):
            await pending.done.wait()

        if not pending.done.is_set():
            if self.lookups.get(key) is pending:
                del self.lookups[key]

            return events.LookupFailed(nickname, "WHOIS timed out")

        return pending.result()
