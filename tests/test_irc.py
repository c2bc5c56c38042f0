import pytest
import trio
import trio.testing

from slackbridge import events
from slackbridge.backends.irc import (
    MAX_NICK_ATTEMPTS,
    IRCConnection,
    IRCRecordStorage,
    IRCResponse,
)


def record(conn):
    received = []

    @conn.listen_all()
    async def _record(kind, data):
        if kind in events.EVENT_KINDS:
            received.append((kind, data))

    return received


def drain(conn):
    items = []

    while not conn.out_queue.empty():
        items.append(conn.out_queue.get_nowait()[0])

    return items


@pytest.fixture
def conn():
    return IRCConnection("irc.example.org", nickname="slckbt", lookup_timeout=5.0)


def test_parse_numeric():
    response = IRCResponse.parse(":server 353 slckbt = #general :@alice +bob")

    assert response.is_numeric
    assert response.kind == 353
    assert response.args == ("slckbt", "=", "#general")
    assert response.data == "@alice +bob"


def test_parse_command_with_tags():
    response = IRCResponse.parse("@time=now :alice!~alice@host privmsg #general :hi :)")

    assert response.kind == "PRIVMSG"
    assert response.nickname == "alice"
    assert response.args == ("#general",)
    assert response.data == "hi :)"


def test_records_track_renames():
    records = IRCRecordStorage()
    records.add_names("#general", ["@alice", "+bob"])
    records.add_names("#general", ["carol"])

    assert records.finish_names("#general") == ["alice", "bob", "carol"]

    records.handle_join("#dev", "bob")
    assert records.handle_nick("bob", "bobby") == ["#dev", "#general"]
    assert records.handle_quit("bobby") == ["#dev", "#general"]
    assert records.channels_of("bobby") == []


@pytest.mark.trio
async def test_names_reply_becomes_roster(conn):
    received = record(conn)

    await conn._receive(":server 353 slckbt = #general :@alice +bob slckbt")
    await conn._receive(":server 366 slckbt #general :End of /NAMES list.")

    assert received == [
        (events.ROSTER, events.Roster("#general", ["alice", "bob", "slckbt"]))
    ]


@pytest.mark.trio
async def test_join_carries_account(conn):
    received = record(conn)

    await conn._receive(":carol!~carol@example.org JOIN :#general")

    assert received == [
        (
            events.JOINED,
            events.Joined(
                "#general", "carol", events.AccountInfo("carol", "~carol", "example.org")
            ),
        )
    ]


@pytest.mark.trio
async def test_nick_change_lists_shared_channels(conn):
    received = record(conn)

    await conn._receive(":server 353 slckbt = #general :alice bob")
    await conn._receive(":server 366 slckbt #general :End")
    await conn._receive(":bob!~bob@host JOIN #dev")
    await conn._receive(":alice!~alice@host PART #general")
    await conn._receive(":bob!~bob@host NICK :bobby")
    await conn._receive(":alice!~alice@host NICK alicia")

    renames = [data for kind, data in received if kind == events.RENAMED]
    assert renames == [
        events.Renamed("bob", "bobby", ["#dev", "#general"]),
        events.Renamed("alice", "alicia", []),
    ]


@pytest.mark.trio
async def test_own_nick_change_is_followed(conn):
    await conn._receive(":slckbt!~slckbt@host NICK :slckbt_")

    assert conn.nickname == "slckbt_"


@pytest.mark.trio
async def test_privmsg_becomes_message(conn):
    received = record(conn)

    await conn._receive(":alice!~alice@host PRIVMSG #general :hey bob")

    assert received == [
        (events.MESSAGE, events.ChatMessage("alice", "#general", "hey bob"))
    ]


@pytest.mark.trio
async def test_error_numerics_become_transport_errors(conn):
    received = record(conn)

    await conn._receive(":server 482 slckbt #general :You're not channel operator")
    await conn._receive(":server 401 slckbt ghost :No such nick/channel")

    assert received == [
        (
            events.TRANSPORT_ERROR,
            events.TransportError("#general", "You're not channel operator", 482),
        ),
        (
            events.TRANSPORT_ERROR,
            events.TransportError("ghost", "No such nick/channel", 401),
        ),
    ]


@pytest.mark.trio
async def test_ping_is_ponged(conn):
    await conn._receive("PING :irc.example.org")

    assert drain(conn) == ["PONG :irc.example.org"]


@pytest.mark.trio
async def test_welcome_sets_nickname(conn):
    await conn._receive(":server 001 slckbt_ :Welcome to IRC")

    assert conn.welcomed.is_set()
    assert conn.nickname == "slckbt_"


@pytest.mark.trio
async def test_lookup_resolves(conn, nursery):
    results = []

    async def lookup():
        results.append(await conn.lookup_account("Alice"))

    nursery.start_soon(lookup)
    nursery.start_soon(lookup)
    await trio.testing.wait_all_tasks_blocked()

    assert drain(conn) == ["WHOIS Alice"]

    await conn._receive(":server 311 slckbt Alice ~alice example.org * :Alice A")
    await conn._receive(":server 318 slckbt Alice :End of /WHOIS list.")
    await trio.testing.wait_all_tasks_blocked()

    account = events.AccountInfo("Alice", "~alice", "example.org", "Alice A")
    assert results == [events.Resolved(account), events.Resolved(account)]
    assert conn.lookups == {}


@pytest.mark.trio
async def test_lookup_of_missing_nickname(conn, nursery):
    received = record(conn)
    results = []

    async def lookup():
        results.append(await conn.lookup_account("ghost"))

    nursery.start_soon(lookup)
    await trio.testing.wait_all_tasks_blocked()

    await conn._receive(":server 401 slckbt ghost :No such nick/channel")
    await conn._receive(":server 318 slckbt ghost :End of /WHOIS list.")
    await trio.testing.wait_all_tasks_blocked()

    assert results == [events.NotFound("ghost")]
    assert received == []


@pytest.mark.trio
async def test_lookup_times_out(conn, autojump_clock):
    result = await conn.lookup_account("slowpoke")

    assert isinstance(result, events.LookupFailed)
    assert result.nickname == "slowpoke"
    assert conn.lookups == {}


def test_messages_are_split_per_line(conn):
    conn.message_sync("#general", "one\ntwo")
    conn.mode_sync("#general", "+o", "alice")

    assert drain(conn) == [
        "PRIVMSG #general :one",
        "PRIVMSG #general :two",
        "MODE #general +o alice",
    ]


@pytest.mark.trio
async def test_handshake_joins_after_welcome():
    conn = IRCConnection(
        "irc.example.org", passw="secret", channels=["#general", "#dev"], throttle=False
    )
    sent = []

    async def fake_send(item):
        sent.append(item)

    conn._send = fake_send
    conn._running = True

    async def wait_for(count):
        with trio.fail_after(5):
            while len(sent) < count:
                await trio.sleep(0.01)

    async with trio.open_nursery() as nursery:
        nursery.start_soon(conn._sender)
        nursery.start_soon(conn.send_irc_handshake)

        await wait_for(3)
        assert sent == ["PASS secret", "NICK slckbt", "USER slckbt 0 * :slackbridge"]

        await conn._receive(":server 001 slckbt :Welcome")
        await wait_for(5)

        nursery.cancel_scope.cancel()

    assert sent[3:] == ["JOIN #dev", "JOIN #general"]
    assert conn.join_channels == set()


@pytest.mark.trio
async def test_receiver_decodes_characters_split_across_reads(conn):
    received = record(conn)
    line = ":alice!~alice@host PRIVMSG #general :café\r\n".encode("utf-8")
    cut = line.index(b"\xc3") + 1

    async def chunks():
        yield line[:cut]
        yield line[cut:]

    conn.connection = chunks()
    await conn._receiver()

    assert received == [
        (events.MESSAGE, events.ChatMessage("alice", "#general", "café"))
    ]


@pytest.mark.trio
async def test_handshake_retries_nickname_in_use():
    conn = IRCConnection("irc.example.org", channels=["#general"], throttle=False)
    sent = []

    async def fake_send(item):
        sent.append(item)

    conn._send = fake_send
    conn._running = True

    async def wait_for(count):
        with trio.fail_after(5):
            while len(sent) < count:
                await trio.sleep(0.01)

    async with trio.open_nursery() as nursery:
        nursery.start_soon(conn._sender)
        nursery.start_soon(conn.send_irc_handshake)

        await wait_for(2)
        await conn._receive(":server 433 * slckbt :Nickname is already in use")
        await wait_for(3)

        assert sent[2] == "NICK slckbt1"
        assert conn.nickname == "slckbt1"

        await conn._receive(":server 001 slckbt1 :Welcome")
        await wait_for(4)

        nursery.cancel_scope.cancel()

    assert sent[3:] == ["JOIN #general"]


@pytest.mark.trio
async def test_nickname_in_use_after_welcome_is_a_transport_error(conn):
    received = record(conn)

    await conn._receive(":server 001 slckbt :Welcome")
    await conn._receive(":server 433 slckbt alice :Nickname is already in use")

    assert drain(conn) == []
    assert conn.nickname == "slckbt"
    assert received == [
        (
            events.TRANSPORT_ERROR,
            events.TransportError("alice", "Nickname is already in use", 433),
        )
    ]


@pytest.mark.trio
async def test_registration_gives_up_after_refused_nicknames(conn):
    for _ in range(MAX_NICK_ATTEMPTS + 1):
        await conn._receive(":server 432 * {} :Erroneous nickname".format(conn.nickname))

    assert drain(conn) == [
        "NICK slckbt{}".format(attempt) for attempt in range(1, MAX_NICK_ATTEMPTS + 1)
    ]
    assert conn.nickname == "slckbt{}".format(MAX_NICK_ATTEMPTS)
