import discord
from discord import app_commands

from .db import PersistenceError
from .models import DEFAULT_OFFICE_NAME, DEFAULT_RADIUS_M, RECENT_WINDOW_SIZE, OfficeLocation, TrackerMode
from .reporter import format_duration_ms
from .tracker import utc_now

MODE_CHOICES = [
    app_commands.Choice(name="GPS (start automatically at the office)", value=TrackerMode.GPS.value),
    app_commands.Choice(name="Manual", value=TrackerMode.MANUAL.value),
]


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)
    tracker = bot.tracker

    async def reply(interaction, content: str) -> None:
        await interaction.response.send_message(content, ephemeral=True)

    async def in_configured_guild(interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await reply(interaction, "This command can only be used in the configured server.")
            return False
        return True

    async def report_save_failure(interaction, action: str) -> None:
        bot.logger.exception("/%s failed to save state", action)
        await reply(interaction, "Could not save the tracker state. Nothing was changed.")

    @bot.tree.command(name="status", description="Show the timer, progress and location status", guild=guild_scope)
    async def status(interaction):
        if not await in_configured_guild(interaction):
            return
        await reply(interaction, bot.reporter.build_status_content(utc_now()))

    @bot.tree.command(name="start", description="Start a manual office session", guild=guild_scope)
    async def start(interaction):
        if not await in_configured_guild(interaction):
            return

        state = tracker.state
        if not state.is_setup:
            await reply(interaction, "Finish setup first: /office-here, /office-set or /office-skip.")
            return
        if state.is_active:
            await reply(interaction, "A session is already running.")
            return
        if state.mode is TrackerMode.GPS:
            await reply(interaction, "GPS mode is on. The session starts when you arrive at the office.")
            return

        try:
            event = tracker.start_session()
        except PersistenceError:
            await report_save_failure(interaction, "start")
            return
        started = event.started_at.astimezone(tracker.tz).strftime("%H:%M") if event else "now"
        await reply(interaction, f"Session started at `{started}`.")

    @bot.tree.command(name="stop", description="Stop the running session and save it to history", guild=guild_scope)
    async def stop(interaction):
        if not await in_configured_guild(interaction):
            return

        try:
            event = tracker.stop_session()
        except PersistenceError:
            await report_save_failure(interaction, "stop")
            return
        if event is None:
            await reply(interaction, "No session is running.")
            return
        await reply(
            interaction,
            f"Session saved for `{event.session.date}`: `{format_duration_ms(event.session.duration_ms)}`.",
        )

    @bot.tree.command(name="mode", description="Switch between GPS and manual tracking", guild=guild_scope)
    @app_commands.describe(mode="How sessions should start")
    @app_commands.choices(mode=MODE_CHOICES)
    async def mode(interaction, mode: app_commands.Choice[str]):
        if not await in_configured_guild(interaction):
            return

        selected = TrackerMode(mode.value)
        try:
            tracker.set_mode(selected)
        except PersistenceError:
            await report_save_failure(interaction, "mode")
            return

        message = f"Mode set to `{selected.value}`."
        if selected is TrackerMode.GPS and tracker.state.office_location is None:
            message += " No office location is set, so GPS tracking stays inactive."
        await reply(interaction, message)

    @bot.tree.command(name="office-set", description="Set the office coordinates", guild=guild_scope)
    @app_commands.describe(
        latitude="Office latitude in degrees",
        longitude="Office longitude in degrees",
        name="Label for the office",
        radius="Geofence radius in meters",
    )
    async def office_set(
        interaction,
        latitude: float,
        longitude: float,
        name: str = DEFAULT_OFFICE_NAME,
        radius: float = DEFAULT_RADIUS_M,
    ):
        if not await in_configured_guild(interaction):
            return

        try:
            location = OfficeLocation(name=name, latitude=latitude, longitude=longitude, radius_m=radius)
        except ValueError as exc:
            await reply(interaction, f"Invalid office location: {exc}")
            return

        try:
            tracker.set_office_location(location)
        except PersistenceError:
            await report_save_failure(interaction, "office-set")
            return
        await reply(interaction, f"Office `{location.name}` set with a {location.radius_m:g}m radius.")

    @bot.tree.command(name="office-here", description="Use your current position as the office", guild=guild_scope)
    @app_commands.describe(name="Label for the office")
    async def office_here(interaction, name: str = DEFAULT_OFFICE_NAME):
        if not await in_configured_guild(interaction):
            return

        try:
            location = tracker.setup_from_current_position(name=name)
        except PersistenceError:
            await report_save_failure(interaction, "office-here")
            return
        if location is None:
            await reply(interaction, "No location signal yet. Send a position update from your phone first.")
            return
        await reply(
            interaction,
            f"Office `{location.name}` set at `{location.latitude:.5f}, {location.longitude:.5f}`. GPS mode is on.",
        )

    @bot.tree.command(name="office-skip", description="Skip office setup and track manually", guild=guild_scope)
    async def office_skip(interaction):
        if not await in_configured_guild(interaction):
            return

        try:
            tracker.skip_setup()
        except PersistenceError:
            await report_save_failure(interaction, "office-skip")
            return
        await reply(interaction, "Setup skipped. Use /start and /stop to track manually.")

    @bot.tree.command(name="radius-toggle", description="Switch the geofence between 100m and 500m", guild=guild_scope)
    async def radius_toggle(interaction):
        if not await in_configured_guild(interaction):
            return

        try:
            location = tracker.toggle_radius()
        except PersistenceError:
            await report_save_failure(interaction, "radius-toggle")
            return
        if location is None:
            await reply(interaction, "No office location is set.")
            return
        await reply(interaction, f"Geofence radius is now {location.radius_m:g}m.")

    @bot.tree.command(name="history", description="Show recent completed sessions", guild=guild_scope)
    @app_commands.describe(days="How many entries to show")
    async def history(interaction, days: app_commands.Range[int, 1, 31] = RECENT_WINDOW_SIZE):
        if not await in_configured_guild(interaction):
            return

        rows = bot.reporter.build_history_rows(days)
        await reply(interaction, bot.reporter.build_history_content(rows))

    @bot.tree.command(name="reset", description="Delete all tracker data", guild=guild_scope)
    @app_commands.describe(confirm="Set to True to confirm. This cannot be undone.")
    async def reset(interaction, confirm: bool = False):
        if not await in_configured_guild(interaction):
            return

        if not confirm:
            await reply(interaction, "Reset all data? This cannot be undone. Run `/reset confirm:True` to proceed.")
            return

        try:
            tracker.reset()
        except PersistenceError:
            await report_save_failure(interaction, "reset")
            return
        await reply(interaction, "All data was reset. Run setup again to continue tracking.")
