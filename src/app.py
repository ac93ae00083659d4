import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from src.base.config.logging_config import LoggingConfig
from src.base.core.errors import register_exception_handlers
from src.base.core.lifespan import lifespan
from src.base.middleware.correlation_middleware import CorrelationMiddleware
from src.base.middleware.global_exception_handler_middleware import (
    GlobalExceptionHandlerMiddleware,
)
from src.base.routes.health import router as health_router
from src.domain.routes.auth_routes import router as auth_router
from src.domain.routes.password_routes import router as password_router
from src.domain.routes.user_routes import router as user_router
from src.domain.routes.users_routes import router as users_router

# Load environment variables
load_dotenv()

# --- Logging configuration ---
LoggingConfig.setup_logging()
logger = logging.getLogger(__name__)

logger.info("Starting FastAPI application")


def create_app() -> FastAPI:
    app = FastAPI(title="Content Calendar Auth", version="1.0.0", lifespan=lifespan)

    register_exception_handlers(app)

    # --- Middleware ---
    app.add_middleware(GlobalExceptionHandlerMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # --- Routes ---
    app.include_router(health_router)
    app.include_router(auth_router, prefix="/api")
    app.include_router(password_router, prefix="/api")
    app.include_router(user_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    return app


app = create_app()
