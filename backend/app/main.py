"""FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import settings
from .problem_details import install_problem_details
from .routers import comments, feedback, issues, notifications, quality, steps

# Create app
app = FastAPI(
    title="Production Feedback",
    version="1.0.0",
    description="Production feedback: step/quality aggregation, notifications and marketplace sync"
)

# Production safety checks (fail closed on insecure config).
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me-in-production":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=cors_headers,
)

install_problem_details(app)

# Include routers
app.include_router(feedback.router, prefix="/api/v1")
app.include_router(steps.router, prefix="/api/v1")
app.include_router(quality.router, prefix="/api/v1")
app.include_router(comments.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(issues.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": "1.0.0",
        "marketplace_configured": bool(settings.MARKETPLACE_API_URL),
        "email_configured": bool(settings.EMAIL_SERVICE_URL and settings.INTERNAL_API_KEY),
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Production Feedback API",
        "version": "1.0.0",
        "docs": "/docs"
    }
