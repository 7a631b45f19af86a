"""
Health check routes - public, no authentication required.
"""
from fastapi import APIRouter

router = APIRouter()


@router.get(
    "",
    summary="System health check",
)
async def health_check():
    """
    Check system health status.

    Reports whether configuration loads and the Firebase SDK is importable.
    Does not query the database.
    """
    health = {
        "status": "healthy",
        "service": "Order Reconciliation API",
        "version": "1.0.0",
        "components": {}
    }

    try:
        import config
        health["components"]["config"] = "ok"
        health["components"]["database_url"] = "set" if config.FIREBASE_DATABASE_URL else "missing"
        if not config.FIREBASE_DATABASE_URL:
            health["status"] = "degraded"
    except Exception as e:
        health["components"]["config"] = f"error: {str(e)}"
        health["status"] = "degraded"

    try:
        import firebase_admin  # noqa: F401
        health["components"]["firebase"] = "available"
    except ImportError:
        health["components"]["firebase"] = "unavailable"
        health["status"] = "degraded"

    try:
        import openpyxl  # noqa: F401
        health["components"]["spreadsheet_reader"] = "available"
    except ImportError:
        health["components"]["spreadsheet_reader"] = "unavailable"

    return health
