"""
harvester.services.discord_client — Discord Client Provider
============================================================

**Why this file exists:**
Role synchronization runs from three places: the bot process (which
already holds a connected ``commands.Bot``), the FastAPI process and the
CLI (which do not).  :class:`DiscordClientProvider` gives all of them the
same thing, a logged-in :class:`discord.Client`, passed explicitly through
the :class:`~harvester.services.role_sync_service.SyncContext`.

* **Owned** mode: the client is created and logged in (REST only, no
  gateway) on the first :meth:`acquire`.  After a connection-level failure
  the synchronizer calls :meth:`dispose`; the next :meth:`acquire` builds a
  fresh one.
* **Borrowed** mode: wraps the bot's live client.  :meth:`dispose` is a
  no-op, since closing it would take the bot offline.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable

import discord

from harvester.config import MissingConfigurationError

logger = logging.getLogger(__name__)


def _default_factory() -> discord.Client:
    intents = discord.Intents.none()
    intents.guilds = True
    intents.members = True
    return discord.Client(intents=intents)


class DiscordClientProvider:
    """Lazily created, disposable Discord client.

    Usage::

        provider = DiscordClientProvider.from_env(timeout=10)
        client = await provider.acquire()
        ...
        await provider.close()
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        client: discord.Client | None = None,
        factory: Callable[[], discord.Client] = _default_factory,
        timeout: float = 10.0,
    ) -> None:
        self._token = token
        self._client = client
        self._owned = client is None
        self._factory = factory
        self.timeout = timeout
        self._lock = asyncio.Lock()

    @classmethod
    def from_env(cls, *, timeout: float = 10.0) -> DiscordClientProvider:
        """Owned provider using ``DISCORD_TOKEN``.  The token is checked on acquire."""
        return cls(os.getenv("DISCORD_TOKEN", "").strip() or None, timeout=timeout)

    @classmethod
    def borrowed(cls, client: discord.Client, *, timeout: float = 10.0) -> DiscordClientProvider:
        return cls(client=client, timeout=timeout)

    @property
    def owns_client(self) -> bool:
        return self._owned

    @property
    def has_credentials(self) -> bool:
        return not self._owned or bool(self._token)

    async def acquire(self) -> discord.Client:
        """Return the client, creating and logging it in on first use.

        Raises
        ------
        MissingConfigurationError
            If an owned provider has no bot token.
        """
        if not self._owned:
            assert self._client is not None
            return self._client

        async with self._lock:
            if self._client is not None:
                return self._client
            if not self._token:
                raise MissingConfigurationError(
                    "DISCORD_TOKEN is not set.  Copy .env.example → .env and fill it in."
                )
            client = self._factory()
            try:
                await asyncio.wait_for(client.login(self._token), timeout=self.timeout)
            except BaseException:
                await self._close_quietly(client)
                raise
            logger.info("Discord client logged in (REST only)")
            self._client = client
            return client

    async def dispose(self) -> None:
        """Drop an owned client so the next :meth:`acquire` re-creates it."""
        if not self._owned:
            return
        async with self._lock:
            client, self._client = self._client, None
        if client is not None:
            await self._close_quietly(client)
            logger.info("Discord client disposed")

    async def close(self) -> None:
        await self.dispose()

    @staticmethod
    async def _close_quietly(client: discord.Client) -> None:
        try:
            await client.close()
        except (discord.DiscordException, OSError):
            logger.warning("Error while closing Discord client", exc_info=True)
