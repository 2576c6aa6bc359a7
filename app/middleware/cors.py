"""CORS middleware configuration"""
from fastapi.middleware.cors import CORSMiddleware
from app.config import Settings


def setup_cors(app, settings: Settings):
    """
    Configure CORS middleware for the application

    Args:
        app: FastAPI application instance
        settings: Application settings carrying the allowed origins
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-dispatch-key"],
    )
