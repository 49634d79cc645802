"""
FastAPI main application for the campaign code analyzer.

This application provides a REST API for real-time and one-shot static analysis
of Marketing Cloud campaign code (AMPscript, SSJS, SQL) and the HTML, CSS and
JavaScript around it.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import traceback
import logging

from .api import analysis, rules, system
from .config import config
from ._version import __version__
from .services.shared import realtime_analyzer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Campaign code analyzer {__version__} starting")
    yield
    await realtime_analyzer.shutdown()
    logger.info("🛑 Campaign code analyzer stopped")


app = FastAPI(
    title="Campaign Code Analyzer API",
    description="Real-time static analysis for AMPscript, SSJS and query-activity SQL",
    version=__version__,
    lifespan=lifespan,
)

# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"🌐 HTTP {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"🌐 Response: {response.status_code}")
    return response

# Global exception handler: analysis failures never surface as bare 500 pages
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    full_traceback = traceback.format_exc()

    logger.error(f"🚨 Unhandled error in {request.method} {request.url}")
    logger.error(f"🚨 Exception: {exc}")
    logger.error(f"🚨 Stack trace:\n{full_traceback}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"{type(exc).__name__}: {exc}",
            "error_type": type(exc).__name__,
            "error_message": str(exc),
            "request_url": str(request.url),
            "request_method": request.method,
        },
    )

# Configure CORS (ENV > config.json > defaults); "*" allows every origin
allowed_origins = config.get_cors_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(analysis.router, prefix="/api/analysis", tags=["analysis"])
app.include_router(rules.router, prefix="/api/rules", tags=["rules"])
app.include_router(system.router, prefix="/api/system", tags=["system"])

@app.get("/")
async def root():
    """Health check endpoint with version info."""
    return {"message": "Campaign Code Analyzer API", "status": "running", "version": __version__}

@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "version": __version__, "sessions": len(realtime_analyzer.active_sessions())}

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=config.get_log_level())
    uvicorn.run(app, host="0.0.0.0", port=8000)
