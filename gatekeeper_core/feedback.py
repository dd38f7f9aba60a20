import asyncio
import logging
from typing import Any, Optional, Set

import discord


class FeedbackManager:
    """
    Transient feedback around a candidate message.

    Every operation is best-effort: a message that is already gone, or that the
    agent may not touch, is skipped without raising.
    """

    def __init__(self, marker: str):
        self.marker = marker
        self.logger = logging.getLogger("gatekeeper.feedback")
        self._pending: Set[asyncio.Task] = set()

    async def place_marker(self, message: Any) -> bool:
        try:
            await message.add_reaction(self.marker)
            return True
        except discord.HTTPException as exc:
            self.logger.debug("Marker not placed on %s: %s", message.id, exc)
            return False

    async def clear_marker(self, message: Any) -> None:
        me = message.guild.me if message.guild else None
        if me is None:
            return
        try:
            await message.remove_reaction(self.marker, me)
        except discord.HTTPException as exc:
            self.logger.debug("Marker not cleared on %s: %s", message.id, exc)

    async def reject(self, message: Any, text: str, ttl: float) -> Optional[Any]:
        try:
            reply = await message.reply(text)
        except discord.HTTPException as exc:
            self.logger.warning("Feedback reply to %s failed: %s", message.id, exc)
            return None
        task = asyncio.create_task(self._delete_later(reply, ttl), name=f"feedback_delete_{reply.id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return reply

    async def discard(self, message: Any) -> bool:
        try:
            await message.delete()
            return True
        except (discord.NotFound, discord.Forbidden):
            return False
        except discord.HTTPException as exc:
            self.logger.warning("Deleting message %s failed: %s", message.id, exc)
            return False

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def _delete_later(self, target: Any, ttl: float) -> None:
        await asyncio.sleep(ttl)
        await self.discard(target)
