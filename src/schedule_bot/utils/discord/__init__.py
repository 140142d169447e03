"""Discord adapters for Schedule Bot."""

from .messaging import DiscordMessageLocator, DiscordMessenger

__all__ = ["DiscordMessageLocator", "DiscordMessenger"]
