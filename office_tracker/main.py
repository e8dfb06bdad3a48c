from __future__ import annotations

import logging

import discord
from aiohttp import web
from discord.ext import commands, tasks
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database, PersistenceError, StateStore
from .models import GeoReading
from .notifier import ChannelNotifier, notify_event
from .receiver import create_app, start_receiver, stop_receiver
from .reporter import Reporter
from .sampler import GeoSampleFeed, Subscription
from .tracker import OfficeTracker, utc_now


class OfficeTrackerBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.tracker = OfficeTracker(StateStore(db), tz=config.timezone)
        self.reporter = Reporter(self.tracker)
        self.notifier = ChannelNotifier()
        self.feed = GeoSampleFeed(
            max_sample_age=config.geo_max_sample_age,
            signal_timeout=config.geo_signal_timeout,
        )

        self.logger = logging.getLogger("office-tracker-bot")

        self.subscription: Subscription | None = None
        self.receiver_runner: web.AppRunner | None = None

    async def setup_hook(self) -> None:
        # Register slash commands, then start listening for positions and ticking.
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

        self.subscription = self.feed.subscribe(self.on_geo_reading)
        self.receiver_runner = await start_receiver(
            create_app(self.feed, self.config.geo_shared_secret),
            self.config.geo_listen_host,
            self.config.geo_listen_port,
        )
        self.tick_loop.start()

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.notifier.channel is not None:
            return

        channel = self.get_channel(self.config.notify_channel_id)
        if not isinstance(channel, discord.TextChannel):
            # Tracking keeps working; notifications are best effort.
            self.logger.error("Notify channel %s is missing or not a text channel", self.config.notify_channel_id)
            return

        me = channel.guild.me
        if me is None or not channel.permissions_for(me).send_messages:
            self.logger.error("Missing send permission in notify channel %s", channel.id)
            return

        self.notifier.channel = channel
        self.logger.info("Notifications go to #%s", channel.name)

    def on_geo_reading(self, reading: GeoReading) -> None:
        try:
            event = self.tracker.apply_geo_sample(reading)
        except PersistenceError:
            self.logger.exception("Could not save the session started by a position update")
            return
        notify_event(self.notifier, event)

    @tasks.loop(seconds=1)
    async def tick_loop(self) -> None:
        now = utc_now()
        notify_event(self.notifier, self.tracker.tick(now))
        self.feed.check_signal(now)

    @tick_loop.before_loop
    async def before_tick_loop(self) -> None:
        await self.wait_until_ready()

    async def close(self) -> None:
        if self.tick_loop.is_running():
            self.tick_loop.cancel()
        if self.subscription is not None:
            self.subscription.cancel()
        if self.receiver_runner is not None:
            await stop_receiver(self.receiver_runner)
            self.receiver_runner = None
        await self.notifier.drain()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.state_db_path)
    db.initialize()

    bot = OfficeTrackerBot(config=config, db=db)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
