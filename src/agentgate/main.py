"""
AgentGate
=========

Runs a configured conversational agent on Discord: direct messages and
mentions get streamed replies backed by bounded conversation memory, and
group channels are screened by an AI moderator with escalating warnings.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the project base directory.

    Resolution order:
    1. AGENTGATE_HOME environment variable, if set.
    2. The executable's directory when running frozen.
    3. Otherwise the repository root (two levels above this package).
    """
    if env_home := os.getenv("AGENTGATE_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from agentgate.bot import gateway_cmds, message_listener
from agentgate.configuration.app_configuration import CONFIG_PATH, AppConfig
from agentgate.platform.discord_adapter import DiscordMessenger, DiscordPermissionChecker
from agentgate.runtime import GatewayRuntime
from agentgate.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If ``DISCORD_BOT_TOKEN`` is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Gateway cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


def create_bot() -> discord.Bot:
    return discord.Bot(intents=build_intents())


def load_cogs(bot: discord.Bot, runtime: GatewayRuntime) -> None:
    message_listener.setup(bot, runtime)
    gateway_cmds.setup(bot, runtime)
    logger.info("All cogs loaded successfully.")


async def run_bot_session(bot: discord.Bot, token: str, runtime: GatewayRuntime) -> int:
    """Run the bot until it disconnects, then shut the runtime down."""
    exit_code = 0
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        if not bot.is_closed():
            await bot.close()
        await runtime.shutdown()
    return exit_code


async def async_main() -> int:
    """Bootstrap configuration, storage and the bot, returning an exit code."""
    token = load_environment()
    config = AppConfig(CONFIG_PATH)

    bot = create_bot()
    try:
        runtime = await GatewayRuntime.from_config(config, DiscordMessenger(bot), DiscordPermissionChecker(bot))
    except Exception as exc:
        logger.critical("Failed to initialize the gateway: %s", exc)
        return 1

    load_cogs(bot, runtime)
    return await run_bot_session(bot, token, runtime)


def main() -> int:
    """Entrypoint returning the process exit code."""
    logger.info("Starting AgentGate…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 0 if code is None else 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the gateway: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())
