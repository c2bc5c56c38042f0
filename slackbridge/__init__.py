"""
slackbridge: relays IRC channels to Slack, mapping IRC nicknames to
Slack users along the way. Runs on trio.
"""

__version__ = "0.1.0"
