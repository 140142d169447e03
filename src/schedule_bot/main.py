"""
Main entry point for Schedule Bot.

This module initializes the Discord bot, loads configuration, sets up
logging, wires the scheduling collaborators together, and manages the
bot's lifecycle.
"""

import asyncio
import logging
import logging.handlers
import signal
import sys
from collections.abc import Coroutine
from datetime import datetime
from pathlib import Path
from typing import override

import discord
from discord.ext import commands

from .bot.dispatcher import EntryDispatcher
from .config.manager import ConfigManager
from .schedule.persistence import JsonEntryStore
from .schedule.templating import DefaultTemplateResolver, EmbedDisplayRenderer
from .utils.cli.args import apply_parsed_args, parse_arguments
from .utils.cli.paths import get_path_config
from .utils.discord.messaging import DiscordMessageLocator, DiscordMessenger

LOG_FILES = ("schedule-bot.log", "schedule-bot-errors.log")


def rotate_logs_on_startup(logs_dir: Path) -> None:
    """
    Rotate existing log files on startup with timestamp-based naming.

    Args:
        logs_dir: Directory containing log files
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    for log_file in LOG_FILES:
        log_path = logs_dir / log_file
        if log_path.exists():
            backup_path = logs_dir / f"{log_file}.{timestamp}"
            try:
                _ = log_path.rename(backup_path)
                print(f"Rotated {log_file} to {backup_path.name}")
            except OSError as e:
                print(f"Warning: Failed to rotate {log_file}: {e}")


def cleanup_old_logs(logs_dir: Path, max_files: int = 10) -> None:
    """
    Clean up old timestamped log files, keeping only the most recent ones.

    Args:
        logs_dir: Directory containing log files
        max_files: Maximum number of timestamped log files to keep per type
    """
    for log_type in LOG_FILES:
        timestamped_files = [
            file_path
            for file_path in logs_dir.glob(f"{log_type}.*")
            if file_path.name != log_type
        ]
        timestamped_files.sort(key=lambda x: x.stat().st_mtime, reverse=True)

        for file_path in timestamped_files[max_files:]:
            try:
                file_path.unlink()
                print(f"Cleaned up old log file: {file_path.name}")
            except OSError as e:
                print(f"Warning: Failed to remove {file_path.name}: {e}")


def setup_logging() -> None:
    """
    Configure logging with rotation and multiple handlers.

    Sets up a rotating debug file, an INFO console stream and a rotating
    error file, and quiets the discord.py loggers.
    """
    logs_dir = get_path_config().log_folder
    _ = logs_dir.mkdir(exist_ok=True, parents=True)

    rotate_logs_on_startup(logs_dir)
    cleanup_old_logs(logs_dir, max_files=10)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
    )
    simple_formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

    # File handler with rotation (5MB max, keep 5 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        logs_dir / LOG_FILES[0],
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(detailed_formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)

    error_handler = logging.handlers.RotatingFileHandler(
        logs_dir / LOG_FILES[1],
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(error_handler)

    # Set specific log levels for noisy libraries
    logging.getLogger("discord").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)
    logging.getLogger("discord.gateway").setLevel(logging.INFO)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class ScheduleBot(commands.Bot):
    """
    Schedule Bot - Discord bot that drives scheduled events.

    Entries posted to schedule channels are started, ended, repeated and
    announced by an EntryDispatcher that runs as a background task.
    """

    def __init__(self, config_manager: ConfigManager, store: JsonEntryStore) -> None:
        """Initialize the bot with required intents and configuration."""
        intents = discord.Intents.default()

        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
        )

        self.config_manager: ConfigManager = config_manager
        self.store: JsonEntryStore = store
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._shutdown_event: asyncio.Event = asyncio.Event()
        self._is_shutting_down: bool = False

        config = config_manager.get_current_config()
        self.dispatcher: EntryDispatcher = EntryDispatcher(
            store=store,
            settings_for=config_manager.settings_for_channel,
            messenger=DiscordMessenger(),
            locator=DiscordMessageLocator(
                self, timeout=config.scheduling.message_lookup_timeout_seconds
            ),
            templates=DefaultTemplateResolver(),
            display=EmbedDisplayRenderer(),
            check_interval=config.scheduling.check_interval_seconds,
        )

    def is_shutting_down(self) -> bool:
        """Check if the bot is currently shutting down."""
        return self._is_shutting_down

    @override
    async def setup_hook(self) -> None:
        """Start the entry dispatcher once the bot is logging in."""
        logger.info("Setting up Schedule Bot...")
        try:
            await self.dispatcher.start()
            logger.info(f"Tracking {len(self.store)} schedule entries")
        except Exception as e:
            logger.exception(f"Fatal error during bot setup: {e}")
            self._shutdown_event.set()
            raise

    def create_background_task(
        self, coro: Coroutine[object, object, None], name: str | None = None
    ) -> asyncio.Task[None]:
        """
        Create and track a background task.

        Args:
            coro: The coroutine to run as a background task
            name: Optional name for the task (for debugging)

        Returns:
            The created task
        """
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        logger.debug(f"Created background task: {name or task.get_name()}")
        return task

    async def cleanup_background_tasks(self) -> None:
        """Cancel all tracked background tasks and wait for them to finish."""
        if not self._background_tasks:
            logger.debug("No background tasks to clean up")
            return

        logger.info(f"Cleaning up {len(self._background_tasks)} background tasks...")
        for task in self._background_tasks:
            if not task.done():
                _ = task.cancel()

        try:
            _ = await asyncio.wait_for(
                asyncio.gather(*self._background_tasks, return_exceptions=True),
                timeout=10.0,
            )
            logger.info("All background tasks cleaned up successfully")
        except TimeoutError:
            logger.warning("Some background tasks did not complete within timeout")

        self._background_tasks.clear()

    async def on_ready(self) -> None:
        """Called when the bot has successfully connected to Discord."""
        if self.user is None:
            logger.error("Bot user is None after ready event")
            return

        logger.info(f"Schedule Bot is ready! Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        if self._shutdown_event.is_set():
            logger.warning("Shutdown requested during startup, initiating graceful shutdown")
            await self.close()

    @override
    async def on_error(self, event: str, *args: object, **kwargs: object) -> None:
        """Log errors raised by event handlers instead of crashing."""
        logger.exception(f"Unhandled exception in event '{event}' with args: {args}")
        if kwargs:
            logger.error(f"Event kwargs: {kwargs}")

    async def on_disconnect(self) -> None:
        """Called when the bot disconnects from Discord."""
        logger.warning("Bot disconnected from Discord")

    async def on_resumed(self) -> None:
        """Called when the bot resumes a session."""
        logger.info("Bot session resumed")

    @override
    async def close(self) -> None:
        """Stop the dispatcher and background tasks, then disconnect."""
        if self._is_shutting_down:
            logger.debug("Shutdown already in progress, skipping duplicate close")
            return

        self._is_shutting_down = True
        logger.info("Initiating graceful shutdown of Schedule Bot...")

        try:
            self._shutdown_event.set()

            try:
                await self.dispatcher.stop()
            except Exception as e:
                logger.error(f"Error stopping entry dispatcher: {e}")

            await self.cleanup_background_tasks()
            await super().close()
            logger.info("Schedule Bot shutdown complete")

        except Exception as e:
            logger.exception(f"Error during bot shutdown: {e}")
            try:
                await super().close()
            except Exception:
                logger.exception("Failed to close Discord connection during error recovery")


def setup_signal_handlers(bot: ScheduleBot) -> None:
    """
    Setup signal handlers for graceful shutdown.

    Handles SIGTERM and SIGINT so the bot closes cleanly when the operating
    system asks it to stop.
    """

    def signal_handler(signum: int, _frame: object) -> None:
        signal_name = signal.Signals(signum).name
        logger.info(f"Received {signal_name} signal, initiating graceful shutdown...")

        loop = asyncio.get_event_loop()
        if loop.is_running():
            _ = bot.create_background_task(bot.close(), "shutdown")
        else:
            logger.warning("Event loop not running, forcing immediate shutdown")
            sys.exit(1)

    _ = signal.signal(signal.SIGTERM, signal_handler)
    _ = signal.signal(signal.SIGINT, signal_handler)

    logger.debug("Signal handlers registered for graceful shutdown")


async def main() -> None:
    """
    Main entry point for the Schedule Bot application.

    Sets up paths and logging, loads configuration, opens the entry store,
    creates the bot and runs it until shutdown.
    """
    parsed_args = parse_arguments()
    path_config = get_path_config()
    apply_parsed_args(parsed_args, path_config)

    setup_logging()
    logger.info("Schedule Bot starting up...")

    config_manager = ConfigManager()
    bot: ScheduleBot | None = None

    try:
        config_path = path_config.config_file

        if not config_path.exists():
            logger.error(f"Configuration file '{config_path}' not found")
            ConfigManager.create_sample_config(config_path.with_name("config.yml.sample"))
            logger.error("A 'config.yml.sample' was written next to it; copy and edit it")
            sys.exit(1)

        try:
            config = config_manager.load_config(config_path)
            config_manager.set_current_config(config)
            logger.info("Configuration loaded and validated successfully")
        except Exception as e:
            logger.exception(f"Failed to load configuration: {e}")
            logger.error("Please check your config.yml file for errors")
            sys.exit(1)

        if parsed_args.entries_file is None:
            path_config.set_entries_file(config.storage.entries_file)
        store = JsonEntryStore(path_config.get_entries_path())

        try:
            bot = ScheduleBot(config_manager, store)
            logger.info("Bot instance created successfully")
        except Exception as e:
            logger.exception(f"Failed to create bot instance: {e}")
            sys.exit(1)

        setup_signal_handlers(bot)

        logger.info("Starting Schedule Bot...")
        try:
            await bot.start(config.services.discord.token)
        except discord.LoginFailure as e:
            logger.error(f"Failed to login to Discord: {e}")
            logger.error("Please check your Discord bot token in config.yml")
            sys.exit(1)
        except discord.HTTPException as e:
            logger.error(f"HTTP error connecting to Discord: {e}")
            logger.error("This may be a temporary Discord API issue, please try again later")
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except SystemExit:
        raise
    except Exception as e:
        logger.exception(f"Fatal error in main: {e}")
        sys.exit(1)
    finally:
        if bot is not None and not bot.is_shutting_down():
            logger.info("Ensuring bot shutdown in finally block...")
            try:
                await bot.close()
            except Exception as e:
                logger.exception(f"Error during final bot cleanup: {e}")

        logger.info("Schedule Bot shutdown complete")
