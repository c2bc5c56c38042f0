"""
The identity map.

IRC nicknames are volatile: anyone can take a free one, and people
rename all the time. The account (ident) behind a nickname is what the
operator configures a Slack user for, so the bridge keeps two tables:
accounts to Slack users, fixed at startup, and nicknames to accounts,
learned while the bot is connected.
"""

import logging
import types
import typing
from typing import Dict, Mapping, Optional

ACCOUNT_PREFIX = "~"

logger = logging.getLogger(__name__)


def normalize(account: str) -> str:
    """Puts an account key in its canonical, '~'-prefixed form.

        >>> normalize('alice')
        '~alice'
        >>> normalize('~alice')
        '~alice'
    """

    if account.startswith(ACCOUNT_PREFIX):
        return account

    return ACCOUNT_PREFIX + account


class IdentityMap:
    """
    Maps IRC accounts to Slack users, and IRC nicknames to IRC accounts.

    Only the nickname side ever changes, and only through bind_nickname
    and rename_nickname. A nickname bound to None is known to be
    unresolved.

        >>> identities = IdentityMap({'alice': 'alice.s'}, own_nickname='slckbt', own_account='slckbt')
        >>> identities.bind_nickname('al', 'alice')
        True
        >>> identities.mapped_for_nickname('al')
        'alice.s'
    """

    def __init__(
        self,
        accounts: Mapping[str, str] = (),
        own_nickname: Optional[str] = None,
        own_account: Optional[str] = None,
    ):
        """
        Keyword Arguments:
            accounts {Mapping[str, str]} -- IRC account to Slack user name. Keys are
                                            normalized. (default: empty)

            own_nickname {Optional[str]} -- The bot's IRC nickname. (default: None)
            own_account {Optional[str]} -- The bot's IRC user name. (default: None)
        """

        self._accounts = types.MappingProxyType(
            {normalize(account): mapped for account, mapped in dict(accounts).items()}
        )
        self._nicknames = {}  # type: Dict[str, Optional[str]]

        self.own_nickname = own_nickname
        self.own_account = normalize(own_account) if own_account else None

    @property
    def accounts(self) -> Mapping[str, str]:
        """The read-only account table."""
        return self._accounts

    def is_own(self, nickname: Optional[str] = None, account: Optional[str] = None) -> bool:
        """Whether a nickname or account belongs to the bot itself."""

        if nickname is not None and nickname == self.own_nickname:
            return True

        if account is not None and normalize(account) == self.own_account:
            return True

        return False

    def resolve_account(self, account: str) -> Optional[str]:
        """Returns the Slack user configured for an IRC account, if any."""
        return self._accounts.get(normalize(account))

    def bind_nickname(self, nickname: str, account: Optional[str]) -> bool:
        """Binds a nickname to an account, replacing any earlier binding.

        Binding to None marks the nickname as explicitly unresolved. The
        bot's own nickname and account are never bound.

        Returns:
            bool -- Whether the binding was recorded.
        """

        if self.is_own(nickname, account):
            logger.debug("Refusing to bind own identity (%s, %s)", nickname, account)
            return False

        self._nicknames[nickname] = normalize(account) if account else None
        return True

    def rename_nickname(self, old_nickname: str, new_nickname: str) -> Optional[str]:
        """Moves whatever old_nickname was bound to over to new_nickname.

            >>> identities = IdentityMap()
            >>> identities.bind_nickname('bob', 'bob')
            True
            >>> identities.rename_nickname('bob', 'bobby')
            '~bob'
            >>> print(identities.resolve_nickname('bob'))
            None

        Returns:
            Optional[str] -- The account new_nickname is now bound to.
        """

        if self.is_own(new_nickname) or self.is_own(old_nickname):
            return None

        if old_nickname not in self._nicknames:
            logger.debug(
                "%s renamed to %s without ever being tracked", old_nickname, new_nickname
            )

        # one assignment, so readers never see neither nickname bound
        self._nicknames[new_nickname] = self._nicknames.pop(old_nickname, None)

        return self._nicknames[new_nickname]

    def resolve_nickname(self, nickname: str) -> Optional[str]:
        """Returns the account a nickname is bound to, if it is resolved."""
        return self._nicknames.get(nickname)

    def is_tracked(self, nickname: str) -> bool:
        """Whether the nickname has any binding at all, resolved or not."""
        return nickname in self._nicknames

    def mapped_for_nickname(self, nickname: str) -> Optional[str]:
        """Returns the Slack user behind a nickname, if there is one."""

        account = self.resolve_nickname(nickname)

        if account is None:
            return None

        return self.resolve_account(account)

    def bindings(self) -> typing.List[typing.Tuple[str, str]]:
        """
        A snapshot of every nickname whose Slack user is known, paired
        with that user. Longest nicknames come first, so that a nickname
        is never shadowed by another one it contains.
        """

        pairs = []

        for nickname in self._nicknames:
            mapped = self.mapped_for_nickname(nickname)

            if mapped is not None:
                pairs.append((nickname, mapped))

        return sorted(pairs, key=lambda pair: (-len(pair[0]), pair[0]))

    def __repr__(self):
        return "{}({} accounts, {} nicknames)".format(
            type(self).__name__, len(self._accounts), len(self._nicknames)
        )
