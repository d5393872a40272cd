"""Main entry point for tenshi-bot."""

import asyncio
import itertools
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import SecretStr

from tenshi_bot.config import Config, load_config
from tenshi_bot.errors import LinkingError, ResetRejectedError
from tenshi_bot.gateway import ConsoleReplyTarget, IncomingMessage
from tenshi_bot.orchestrator import Orchestrator

CONSOLE_BOT_ID = "console-bot"
CONSOLE_CHANNEL_ID = "console"


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def load_api_keys_from_env(config: Config) -> Config:
    """Fill unset secrets and ids from the bare environment names."""
    providers = config.providers
    if not providers.shapes_api_key:
        key = os.getenv("SHAPESINC_API_KEY") or os.getenv("SHAPES_API_KEY")
        if key:
            providers.shapes_api_key = SecretStr(key)

    if not providers.gemini_api_key:
        # Support both GEMINI_API_KEY and GOOGLE_API_KEY
        key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if key:
            providers.gemini_api_key = SecretStr(key)

    url = os.getenv("SHAPES_API_URL")
    if url:
        providers.shapes_api_url = url

    username = os.getenv("SHAPESINC_SHAPE_USERNAME") or os.getenv("SHAPES_USERNAME")
    if username:
        providers.shape_username = username

    if not config.auth.app_id:
        app_id = os.getenv("APP_ID") or os.getenv("SHAPESINC_APP_ID")
        if app_id:
            config.auth.app_id = app_id

    return config


async def handle_command(orchestrator: Orchestrator, user_id: str, line: str) -> str:
    """Run one slash command from the console and return the text to show."""
    name, _, arg = line[1:].partition(" ")
    arg = arg.strip()
    db = orchestrator.database

    if name == "trigger":
        if arg:
            orchestrator.set_trigger_word(arg)
        return f"Trigger word: {orchestrator.get_trigger_word()}"
    elif name == "wack":
        cleared = await orchestrator.clear_context(CONSOLE_CHANNEL_ID)
        return "Context cleared." if cleared else "Nothing to clear."
    elif name == "logging":
        enabled = not orchestrator.settings.is_logging_enabled()
        orchestrator.set_logging(enabled)
        return f"Diagnostic logging {'enabled' if enabled else 'disabled'}."
    elif name == "api":
        if arg:
            orchestrator.set_primary_provider(arg)
        return f"Primary provider: {orchestrator.settings.primary_provider}"
    elif name == "shape":
        if arg:
            orchestrator.set_shapes_client(arg)
        return f"Shapes client: {orchestrator.settings.shapes_client}"
    elif name == "username":
        if arg:
            orchestrator.set_shape_username(arg)
        return f"Shape username: {orchestrator.settings.shape_username}"
    elif name == "auth":
        return await handle_auth_command(orchestrator, user_id, arg)
    elif name == "blacklist":
        await db.blacklist_user(arg)
        return f"Blacklisted user {arg}."
    elif name == "whitelist":
        removed = await db.whitelist_user(arg)
        return f"Whitelisted user {arg}." if removed else f"User {arg} was not blacklisted."
    elif name == "bchannel":
        await db.blacklist_channel(arg or CONSOLE_CHANNEL_ID)
        return "Channel blacklisted."
    elif name == "wchannel":
        removed = await db.whitelist_channel(arg or CONSOLE_CHANNEL_ID)
        return "Channel whitelisted." if removed else "Channel was not blacklisted."
    elif name == "activate":
        await db.activate_channel(arg or CONSOLE_CHANNEL_ID)
        return "Channel activated; every message gets a reply."
    elif name == "deactivate":
        removed = await db.deactivate_channel(arg or CONSOLE_CHANNEL_ID)
        return "Channel deactivated." if removed else "Channel was not active."
    return f"Unknown command: /{name}"


async def handle_auth_command(orchestrator: Orchestrator, user_id: str, arg: str) -> str:
    """`/auth status|revoke|reset|<code>`."""
    if arg in ("", "status"):
        summary = await orchestrator.auth_summary(user_id)
        if summary.remaining is not None:
            return f"Status: {summary.status.value}, {summary.remaining} free messages left"
        return f"Status: {summary.status.value}, {summary.message_count} messages used"
    if arg == "revoke":
        removed = await orchestrator.revoke_auth(user_id)
        return "Authentication revoked." if removed else "You were not authenticated."
    if arg == "reset":
        try:
            await orchestrator.reset_usage(user_id)
        except ResetRejectedError as e:
            return str(e)
        return "Usage count reset."
    try:
        await orchestrator.link_account(user_id, arg)
    except LinkingError as e:
        return f"Authentication failed: {e}"
    return "Authenticated! You now have unlimited access."


async def console_loop(orchestrator: Orchestrator, config: Config, user_id: str) -> None:
    """Chat with the pipeline from a terminal, one line per message."""
    logger = logging.getLogger(__name__)
    reply_target = ConsoleReplyTarget(config.chat.bot_name)
    loop = asyncio.get_running_loop()
    message_ids = itertools.count(1)

    print(f"Chatting as {user_id}. Commands start with '/'. Ctrl-D to quit.")
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue

        if line.startswith("/"):
            try:
                print(await handle_command(orchestrator, user_id, line))
            except ValueError as e:
                print(str(e))
            continue

        message = IncomingMessage(
            message_id=str(next(message_ids)),
            author_id=user_id,
            content=line,
            channel_id=CONSOLE_CHANNEL_ID,
            display_name=user_id,
            channel_name="console",
        )
        result = await orchestrator.handle_message(message, reply_target)
        logger.debug(f"Processed: {result.state.value} ({result.reason})")


async def async_main(
    config_path: str | None = None,
    debug: bool = False,
    debug_ai: bool = False,
    user_id: str = "console-user",
) -> None:
    """Async main entry point."""
    setup_logging(debug)
    logger = logging.getLogger(__name__)

    # Load .env file if present
    load_dotenv()

    # Load configuration
    config = load_config(config_path)
    config = load_api_keys_from_env(config)

    # Set global AI debug flag
    if debug_ai:
        from tenshi_bot.core.logging import set_ai_debug
        set_ai_debug(True)
        logger.info("AI debug logging enabled - full provider inputs and outputs will be logged")

    logger.info("Starting Tenshi-Bot...")
    logger.info(f"Shape: {config.providers.shape_username} (primary: {config.providers.primary})")

    orchestrator = Orchestrator.from_config(config, bot_user_id=CONSOLE_BOT_ID)

    try:
        await console_loop(orchestrator, config, user_id)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        await orchestrator.close()


def main() -> None:
    """Main entry point (sync wrapper)."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Tenshi-Bot: Shapes-backed chat bot with a free-tier auth wall",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--debug-ai",
        action="store_true",
        help="Log full inputs and outputs for all provider calls",
    )
    parser.add_argument(
        "-u", "--user",
        type=str,
        default="console-user",
        help="User id to chat as in the console",
    )

    args = parser.parse_args()

    asyncio.run(async_main(
        config_path=args.config,
        debug=args.debug,
        debug_ai=args.debug_ai,
        user_id=args.user,
    ))


if __name__ == "__main__":
    main()
