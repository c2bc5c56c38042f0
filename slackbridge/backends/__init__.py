"""The transports a Bridge runs on: an IRC client, and a Slack poster."""
