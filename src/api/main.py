"""
FastAPI application factory.
Creates the app with CORS, auth initialization, and router registration.
Swagger UI available at /docs, ReDoc at /redoc.
"""
import sys
from pathlib import Path
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Ensure src/ is on the path
_src_dir = str(Path(__file__).parent.parent)
if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic for the FastAPI app."""
    import config
    from api.auth.jwt_handler import JWTHandler
    from api.auth.dependencies import init_auth
    from utils.logger import get_logger

    logger = get_logger()
    logger.info(f"Initializing Order Reconciliation API on port {config.API_PORT}", component="API")

    # Tests install their own handler before startup
    if config.API_JWT_SECRET:
        jwt_handler = JWTHandler(
            secret=config.API_JWT_SECRET,
            algorithm=config.API_JWT_ALGORITHM,
            access_expiry_minutes=config.API_JWT_EXPIRY_MINUTES,
        )
        init_auth(jwt_handler)
        app.state.jwt_handler = jwt_handler
        logger.info("Auth system initialized", component="API")
    else:
        logger.warning("API_JWT_SECRET is not set; protected routes will fail", component="API")

    if not config.FIREBASE_DATABASE_URL:
        logger.warning("FIREBASE_DATABASE_URL is not set; order routes will fail", component="API")

    logger.info(f"Swagger UI: http://localhost:{config.API_PORT}/docs", component="API")

    yield

    logger.info("Shutting down API server", component="API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    import config

    app = FastAPI(
        title="Order Reconciliation API",
        description=(
            "REST API for the master reconciliation file - keyset-paginated "
            "browsing, exact-match search on indexed fields, spreadsheet "
            "upload and manual order edits.\n\n"
            "**Authentication**: pass the identity provider's JWT as "
            "`Authorization: Bearer <token>`. Upload and edit need `role: admin`."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.API_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from api.routes.recon_routes import router as recon_router
    from api.routes.order_routes import router as order_router
    from api.routes.health_routes import router as health_router

    app.include_router(recon_router, prefix="/recon", tags=["Reconciliation"])
    app.include_router(order_router, prefix="/orders", tags=["Orders"])
    app.include_router(health_router, prefix="/health", tags=["Health"])

    @app.get("/", tags=["Root"])
    async def root():
        """API root - service banner."""
        return {
            "service": "Order Reconciliation API",
            "version": "1.0.0",
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
        }

    return app
