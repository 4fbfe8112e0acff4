"""
Share Link Engine - FastAPI Application

Main entry point for the Share Link Engine backend.

Flow:
- Operator → TokenIssuer → share link (secret + scope + expiry)
- Visitor secret → TokenValidator → Scope
- Scope → ScopedReadProjector → public form view
- Scope + submissions → VersionedSubmissionEngine → per-unit outcomes
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import auth_router, share_links_router, public_forms_router
from .database import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Share Link Engine",
    description="""
    Share Link Engine - Ephemeral Public Access to Project Data

    Operators issue time-limited links scoped to a project and a subset of
    its employers. Visitors holding a link can view and update exactly that
    subset, with every update kept as a new version.

    ## Key Principles
    - The secret is the only credential a visitor presents
    - Scope is fixed at issuance and enforced on every read and write
    - Records are never overwritten; each update appends a version
    - Concurrent submitters never corrupt the current version
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(share_links_router)
app.include_router(public_forms_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Share Link Engine",
        "version": "1.0.0",
        "description": "Ephemeral scoped access with versioned submissions",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
