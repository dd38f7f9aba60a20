import asyncio
import os
import sys
from typing import Optional

import discord
from dotenv import load_dotenv

from gatekeeper_core import (
    LifecycleState,
    PolicyStore,
    RuntimeConfig,
    VerificationEngine,
)
from gatekeeper_core.audit import build_logger


load_dotenv()


class GatekeeperAdapter(discord.Client):
    def __init__(
        self,
        config: RuntimeConfig,
        engine: VerificationEngine,
        lifecycle: LifecycleState,
    ):
        intents = discord.Intents.none()
        intents.guilds = True
        intents.members = True
        intents.messages = True
        intents.message_content = True
        super().__init__(
            intents=intents,
            max_messages=200,
            chunk_guilds_at_startup=False,
        )
        self.config = config
        self.engine = engine
        self.lifecycle = lifecycle
        self.logger = build_logger(config)
        self._presence_task: Optional[asyncio.Task] = None

    async def close(self) -> None:
        self.lifecycle.mark_stopping()
        if self._presence_task is not None:
            self._presence_task.cancel()
        await super().close()

    async def on_ready(self) -> None:
        print(f"[READY] Gatekeeper online as {self.user} ({self.user.id}) | guilds={len(self.guilds)}", flush=True)
        if self.lifecycle.ready:
            # Gateway reconnects fire on_ready again.
            return
        await self._refresh_presence()
        if self._presence_task is None:
            self._presence_task = asyncio.create_task(self._presence_loop(), name="presence_refresh")
        self.lifecycle.mark_ready()
        self.logger.info("Lifecycle ready; verification enabled")

    async def on_message(self, message: discord.Message) -> None:
        await self.engine.on_candidate_message(message, self.lifecycle)

    async def on_error(self, event_method: str, /, *args, **kwargs) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, discord.NotFound):
            # Usually a message that was deleted underneath us.
            self.logger.info("Suppressed NotFound in %s: %s", event_method, exc)
            return
        self.logger.exception("Unhandled error in %s", event_method)

    async def _refresh_presence(self) -> None:
        for guild in self.guilds:
            if guild.chunked:
                continue
            try:
                await guild.chunk()
            except discord.HTTPException as exc:
                self.logger.warning("Member chunk failed for guild %s: %s", guild.id, exc)
        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name=f"{len(self.users)} users across {len(self.guilds)} servers",
        )
        try:
            await self.change_presence(activity=activity)
        except (discord.HTTPException, ConnectionError) as exc:
            self.logger.warning("Presence update failed: %s", exc)

    async def _presence_loop(self) -> None:
        while not self.is_closed():
            await asyncio.sleep(self.config.presence_interval_seconds)
            await self._refresh_presence()


def build_engine(config: RuntimeConfig) -> VerificationEngine:
    store = PolicyStore(config)
    if config.policy_seed_path is not None and config.policy_seed_path.exists():
        store.load_seed(config.policy_seed_path)
    print(f"[POLICY] verification policies loaded for {len(store.guild_ids())} guilds", flush=True)
    return VerificationEngine(config=config, policies=store, logger=build_logger(config))


async def main() -> None:
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable required.")

    config = RuntimeConfig.from_env()
    lifecycle = LifecycleState()
    engine = build_engine(config)
    adapter = GatekeeperAdapter(config=config, engine=engine, lifecycle=lifecycle)
    try:
        await adapter.start(token=token)
    finally:
        if not adapter.is_closed():
            await adapter.close()


if __name__ == "__main__":
    asyncio.run(main())
