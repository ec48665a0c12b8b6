"""FastAPI application entry point."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatclient.ChatBot import ChatBot
from chatclient.config import Settings
from chatclient.log import configure_logging
from chatclient.TransportClient import TransportClient
from conversations.ConversationStore import ConversationStore
from conversations.DatabaseProvider import DatabaseProvider

from api.routes import router

logger = logging.getLogger(__name__)


def create_app(bot: ChatBot | None = None) -> FastAPI:
    """Build the application.

    Args:
        bot: Pre-built orchestrator. When omitted, one is assembled at
            startup from environment settings; startup fails if the webhook
            URL does not pass endpoint validation.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        """Set up and tear down application-wide resources."""
        if bot is not None:
            app.state.bot = bot
            yield
            return

        load_dotenv()
        settings = Settings.from_env()
        configure_logging(settings.log_level)

        transport = TransportClient.from_settings(settings)
        db_provider = DatabaseProvider(settings.db_path)
        store = ConversationStore(
            db_provider.get_connection(),
            max_field_length=settings.title_max_length,
        )
        app.state.bot = ChatBot(transport, store)
        logger.info("Chat API ready (database: %s)", settings.db_path)

        yield

        await transport.aclose()
        db_provider.close()

    app = FastAPI(
        title="Dreamstate Chat API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    )

    app.include_router(router)
    return app


app = create_app()


def serve() -> None:
    """Start the uvicorn server using environment configuration."""
    load_dotenv()
    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "3000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    serve()
