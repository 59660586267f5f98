"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .dependencies import cors_origins
from .routes import migrations

app = FastAPI(
    title="Org Migrator API",
    description="API for validating and running org-to-org migrations",
    version="0.1.0",
)

# Browser access only for origins listed in ORG_MIGRATOR_CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(migrations.router, prefix="/api", tags=["migrations"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
