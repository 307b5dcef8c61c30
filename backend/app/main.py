"""
Compliance Tracker - FastAPI Application

Main entry point for the Compliance Tracker backend.

Areas:
- Nexus: payroll/census upload → states with likely registration obligations
- Compliance: submissions (registrations, licenses, filings) with expiration tracking
- To-dos: user tasks plus renewal reminders generated by the renewal engine
- Resources: per-state guidance for each compliance type
"""
import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import auth_router, compliance_router, todos_router, resources_router, nexus_router
from .database import init_db

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Compliance Tracker",
    description="""
    Compliance Tracker - State Registration & Renewal Management

    ## Workflow
    1. **Determine Nexus**: Upload payroll/census data → states identified
    2. **Track Submissions**: Record registrations, licenses and filings per state
    3. **Renewals**: On session start the renewal sync flags anything due in 30 days
    4. **Act**: Renew, dismiss or defer each flagged item

    ## Key Principles
    - Flagged items are system-generated only; users create tasks
    - At most one open reminder per submission
    - One non-obsolete submission per state, compliance type and entity
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(compliance_router)
app.include_router(todos_router)
app.include_router(resources_router)
app.include_router(nexus_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Compliance Tracker",
        "version": "1.0.0",
        "description": "State compliance registration and renewal tracking",
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
