"""Main FastAPI application"""
from fastapi import FastAPI
from app.config import Settings, get_settings
from app.middleware.cors import setup_cors
from app.middleware.error_handler import setup_error_handling
from app.routers import responses, webhooks
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        settings: Settings to configure middleware with (defaults to env)

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title="FormsEdge Delivery API",
        description="Canonical form responses and webhook delivery",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Setup CORS
    setup_cors(app, settings)

    # Structured errors and the catch-all middleware
    setup_error_handling(app)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "formsedge-delivery", "environment": settings.environment}

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "FormsEdge Delivery API",
            "version": "1.0.0",
            "docs": "/docs"
        }

    app.include_router(responses.router, prefix="/api/responses", tags=["Responses"])
    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
