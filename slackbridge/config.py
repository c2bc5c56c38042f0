"""
Bridge configuration.

A bridge is configured with a single JSON object, e.g.:

    {
        "server": "irc.libera.chat",
        "nick": "slckbt",
        "token": "xoxb-...",
        "channels": {"#general": "#irc-general"},
        "users": {"alice": "alice.s"}
    }
"""

import json
import ssl
from typing import Any, Dict, Mapping, Optional

import attr

from slackbridge.errors import ConfigError
from slackbridge.identity import normalize


def _string_mapping(instance, attribute, value):
    for key, item in value.items():
        if not isinstance(key, str) or not isinstance(item, str):
            raise ConfigError(
                "{} must map strings to strings, got {!r}: {!r}".format(
                    attribute.name, key, item
                )
            )


def _positive(instance, attribute, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError("{} must be a positive number, got {!r}".format(attribute.name, value))


def _port(instance, attribute, value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError("port must be an integer, got {!r}".format(value))


_string = attr.validators.instance_of(str)
_flag = attr.validators.instance_of(bool)


@attr.s(auto_attribs=True, frozen=True)
class BridgeConfig:
    """
    Everything a Bridge needs to know to connect both sides.

        >>> config = BridgeConfig.from_mapping({
        ...     'server': 'irc.example.org',
        ...     'token': 'xoxb-0',
        ...     'channels': {'#general': '#irc'},
        ...     'users': {'alice': 'alice.s'},
        ... })
        >>> config.nick, config.port, config.silent
        ('slckbt', 6667, False)
        >>> dict(config.users)
        {'~alice': 'alice.s'}
    """

    server: str = attr.ib(validator=_string)
    token: str = attr.ib(validator=_string)
    channels: Dict[str, str] = attr.ib(
        converter=dict, validator=_string_mapping
    )
    users: Dict[str, str] = attr.ib(
        factory=dict,
        converter=lambda users: {normalize(user): name for user, name in dict(users).items()},
        validator=_string_mapping,
    )

    port: int = attr.ib(default=6667, validator=_port)
    secure: bool = attr.ib(default=False, validator=_flag)
    self_signed: bool = attr.ib(default=False, validator=_flag)
    password: Optional[str] = attr.ib(
        default=None, validator=attr.validators.optional(_string)
    )

    nick: str = attr.ib(default="slckbt", validator=_string)
    username: str = attr.ib(default="slckbt", validator=_string)
    realname: str = attr.ib(default="slackbridge", validator=_string)

    silent: bool = attr.ib(default=False, validator=_flag)
    flood_protection: bool = attr.ib(default=True, validator=_flag)
    # How many times per second the IRC throttle cools down by one line.
    flood_protection_hertz: float = attr.ib(default=1.2, validator=_positive)
    lookup_timeout: float = attr.ib(default=10.0, validator=_positive)

    @channels.validator
    def _has_channels(self, attribute, value):
        if not value:
            raise ConfigError("At least one channel must be bridged")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BridgeConfig":
        """Builds a configuration from a plain mapping, such as parsed JSON.

        Raises:
            ConfigError: A required key is missing, or an unknown key is present.
        """

        known = {field.name for field in attr.fields(cls)}
        unknown = set(data) - known

        if unknown:
            raise ConfigError("Unknown configuration keys: {}".format(", ".join(sorted(unknown))))

        missing = {"server", "token", "channels"} - set(data)

        if missing:
            raise ConfigError("Missing configuration keys: {}".format(", ".join(sorted(missing))))

        try:
            return cls(**data)

        except (TypeError, ValueError, AttributeError) as err:
            raise ConfigError(str(err)) from err

    @classmethod
    def from_file(cls, path: str) -> "BridgeConfig":
        """Loads a configuration from a JSON file."""

        try:
            with open(path) as config_file:
                data = json.load(config_file)

        except (OSError, ValueError) as err:
            raise ConfigError("Cannot read {}: {}".format(path, err)) from err

        if not isinstance(data, dict):
            raise ConfigError("{} must hold a JSON object".format(path))

        return cls.from_mapping(data)

    def ssl_context(self) -> Optional[ssl.SSLContext]:
        """The SSL context to connect to IRC with, if secure."""

        if not self.secure:
            return None

        context = ssl.create_default_context()

        if self.self_signed:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        return context
