import logging
from typing import Any, Optional, Sequence

import discord


class IntroLookup:
    """
    Find out whether a member has posted in any of the introduction channels.

    Channels are scanned in the order given and the scan stops at the first
    channel holding a message by the author. History always comes from the API
    (``channel.history``) because the message cache is empty after a restart.
    """

    def __init__(self, history_limit: Optional[int] = None):
        self.history_limit = history_limit
        self.logger = logging.getLogger("gatekeeper.intro_lookup")

    async def has_introduced(self, guild: Any, author_id: int, channel_ids: Sequence[int]) -> bool:
        for channel_id in channel_ids:
            channel = await self._resolve_channel(guild, channel_id)
            if channel is None:
                self.logger.warning("Intro channel %s in guild %s could not be resolved; skipping", channel_id, guild.id)
                continue
            try:
                if await self._authored_in(channel, author_id):
                    return True
            except discord.HTTPException as exc:
                self.logger.warning("Intro channel %s unreadable; skipping: %s", channel_id, exc)
        return False

    async def _authored_in(self, channel: Any, author_id: int) -> bool:
        async for message in channel.history(limit=self.history_limit):
            if message.author.id == author_id:
                return True
        return False

    async def _resolve_channel(self, guild: Any, channel_id: int) -> Any:
        channel = guild.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await guild.fetch_channel(channel_id)
        except discord.HTTPException as exc:
            self.logger.debug("fetch_channel failed for %s: %s", channel_id, exc)
            return None
