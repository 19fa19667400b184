"""BotPass webhook relay: inbound bot messages and outbound webhook delivery."""

__version__ = "0.1.0"
