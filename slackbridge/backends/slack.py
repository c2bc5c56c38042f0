"""
The Slack backend.

Posts messages through the Slack Web API, using aiohttp. Since
slackbridge runs on trio while aiohttp runs on asyncio, requests go
through trio_asyncio, which bridges the two event loops.
"""

import asyncio
import typing
from typing import Any, Dict, Optional

import aiohttp
import trio_asyncio

from slackbridge.backend import ThrottledBackend

SLACK_API_URL = "https://slack.com/api/"


class SlackClient(ThrottledBackend):
    """
    A Slack backend. Only ever sends; replies from Slack are
    checked for errors, which are logged and otherwise dropped.
    """

    def __init__(
        self,
        token: str,
        api_url: str = SLACK_API_URL,
        timeout: float = 30.0,
        max_heat: int = 4,
        cooldown_hertz: float = 1.0,
        **kwargs
    ):
        """
        Prepares a Slack Web API client, which can be used
        as a slackbridge backend.

        Arguments:
            token {str} -- The Slack API token.

        Keyword Arguments:
            api_url {str} -- The base URL of the Slack Web API. (default: SLACK_API_URL)
            timeout {float} -- Total timeout of a single API call, in seconds. (default: 30.0)

            max_heat {int} --   The maximum 'heat' (messaging spree) before
                                outgoing posts are throttled. (default: 4)

            cooldown_hertz {float} --   How many times per second throttle heat is cooled down.
                                        (default: 1.0)
        """

        super().__init__(max_heat=max_heat, cooldown_hertz=cooldown_hertz, **kwargs)

        self._token = token
        self.api_url = api_url
        self.timeout = timeout
        self.session = None  # type: Optional[aiohttp.ClientSession]

    @staticmethod
    def build_payload(
        channel: str,
        text: str,
        username: str,
        parse: str = "full",
        link_names: bool = True,
        unfurl_links: bool = True,
    ) -> Dict[str, Any]:
        """Builds the form body of a chat.postMessage call.

            >>> SlackClient.build_payload('#general', 'hi', 'alice.s')['link_names']
            1
        """

        return {
            "channel": channel,
            "text": text,
            "username": username,
            "parse": parse,
            "link_names": int(link_names),
            "unfurl_links": int(unfurl_links),
        }

    def post(self, channel: str, text: str, username: str, **flags):
        """
        Queues a message to be posted to a Slack channel, without
        waiting for it to be sent.

        Arguments:
            channel {str} -- The Slack channel.
            text {str} -- The message.
            username {str} -- The name to post the message as.

        Keyword Arguments:
            parse, link_names, unfurl_links -- chat.postMessage flags; see build_payload.
        """

        self.send_sync(("chat.postMessage", self.build_payload(channel, text, username, **flags)))

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Calls a Web API method. Runs on asyncio."""

        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Authorization": "Bearer {}".format(self._token)},
            )

        async with self.session.post(self.api_url + method, data=payload) as resp:
            resp.raise_for_status()
            return await resp.json()

    async def _send(self, item: typing.Tuple[str, Dict[str, Any]]):
        method, payload = item

        try:
            reply = await trio_asyncio.aio_as_trio(self._call)(method, payload)

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            self.logger.warning(
                "Slack %s to %s failed: %s", method, payload.get("channel"), err
            )
            return

        if not isinstance(reply, dict):
            self.logger.warning(
                "Slack %s to %s answered oddly: %r", method, payload.get("channel"), reply
            )

        elif not reply.get("ok", False):
            self.logger.warning(
                "Slack %s to %s refused: %s",
                method,
                payload.get("channel"),
                reply.get("error", "unknown error"),
            )

    async def gracefully_close(self):
        if self.session is not None:
            await trio_asyncio.aio_as_trio(self.session.close)()
            self.session = None
