"""
FastAPI Application - Main web application setup
===============================================

This module creates and configures the FastAPI application exposing
the bot's JSON API.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from core.config import Config, load_config
from core.exceptions import BotError
from core.logging import setup_logging, get_logger
from core.message import ChatConnection, LogConnection
from services.bot import ChatBot

logger = get_logger("web.app")


def create_app(
    config: Optional[Config] = None,
    bot: Optional[ChatBot] = None,
    connection: Optional[ChatConnection] = None,
    debug: bool = False
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration
        bot: Wired bot instance, built from the config when None
        connection: Outbound connection used for raised events
        debug: Enable debug mode

    Returns:
        Configured FastAPI application
    """
    if bot is None:
        if config is None:
            config = load_config()

        setup_logging(
            log_dir=config.log_dir,
            log_level="DEBUG" if debug else "INFO",
            console_output=True
        )

        bot = ChatBot(config)
        bot.load_rules()

    config = bot.config

    app = FastAPI(
        title=config.app_name,
        description="API for the chat rule bot",
        version=config.version,
        debug=debug or config.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.bot = bot
    app.state.connection = connection or LogConnection()

    from .routes import router as main_router
    app.include_router(main_router, prefix="")

    @app.exception_handler(BotError)
    async def bot_exception_handler(request: Request, exc: BotError):
        return JSONResponse(status_code=400, content={"error": exc.message, "details": exc.details})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc) if debug else "An error occurred"}
        )

    logger.info("Web application created")

    return app


def run_app(
    host: str = "127.0.0.1",
    port: int = 8080,
    debug: bool = False,
    config: Optional[Config] = None,
    bot: Optional[ChatBot] = None
) -> None:
    """
    Run the web application server.

    Args:
        host: Host address to bind
        port: Port to listen on
        debug: Enable debug mode
        config: Application configuration
        bot: Wired bot instance
    """
    app = create_app(config=config, bot=bot, debug=debug)

    logger.info(f"Starting web server on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if debug else "info"
    )
