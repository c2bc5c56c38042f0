import pytest

from slackbridge import events
from slackbridge.identity import IdentityMap
from slackbridge.relay import MessageRelay, prepare_message


def test_text_without_known_nicknames_is_unchanged(identities, relay, gateway):
    identities.bind_nickname("alice", "alice")

    assert relay.relay("alice", "#general", "nobody in particular")
    assert gateway.posts[0].text == "nobody in particular"


def test_mentions_and_sender_are_mapped(identities, relay, gateway):
    identities.bind_nickname("alice", "~alice")

    relay.relay("alice", "#general", "hey alice check this")

    (post,) = gateway.posts
    assert post.channel == "#irc-general"
    assert post.text == "hey @alice.s check this"
    assert post.as_username == "@alice.s"
    assert post.flags == {"parse": "full", "link_names": True, "unfurl_links": True}


def test_unresolved_sender_posts_as_raw_nickname(identities, relay, gateway):
    identities.bind_nickname("eve", None)

    relay.relay("eve", "#dev", "hi")

    assert gateway.posts[0].as_username == "eve"
    assert gateway.posts[0].channel == "#irc-dev"


def test_unresolved_and_unmapped_nicknames_are_left_alone(identities, relay, gateway):
    identities.bind_nickname("eve", None)
    identities.bind_nickname("dave", "dave")
    identities.bind_nickname("bob", "bob")

    relay.relay("bob", "#general", "eve and dave and bob")

    assert gateway.posts[0].text == "eve and dave and @bob.b"


def test_matching_is_case_sensitive(identities, relay, gateway):
    identities.bind_nickname("alice", "alice")

    relay.relay("alice", "#general", "Alice? alice!")

    assert gateway.posts[0].text == "Alice? @alice.s!"


def test_substitutions_are_not_rescanned(gateway):
    identities = IdentityMap({"alice": "bob", "bob": "carol"})
    identities.bind_nickname("alice", "alice")
    identities.bind_nickname("bob", "bob")

    MessageRelay(identities, gateway).relay("alice", "#general", "alice bob")

    assert gateway.posts[0].text == "@bob @carol"


def test_longest_nickname_wins():
    assert prepare_message("al alice", [("alice", "a.s"), ("al", "al.b")]) == "@al.b @a.s"


def test_unbridged_channel_is_not_relayed(relay, gateway):
    assert not relay.relay("alice", "slckbt", "psst")
    assert gateway.posts == []


@pytest.mark.trio
async def test_message_event_is_relayed(identities, relay, gateway):
    identities.bind_nickname("carol", "carol")

    await relay.dispatch(None, events.MESSAGE, events.ChatMessage("carol", "#general", "hello"))

    assert gateway.posts[0].as_username == "@carol.c"
    assert gateway.posts[0].text == "hello"
