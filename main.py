"""
IntelliService Backend - Main Application

Field-service business logic behind the IntelliService app:
BI reports, payroll, AHS warranty invoicing, CRM, technician tickets
and live tracking, on top of the Supabase database.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os
import logging

load_dotenv()

from intelliservice.routers import reports, payroll, ahs, crm, tickets, tracking, company, realtime
from intelliservice.scheduler import start_scheduler, stop_scheduler
from intelliservice.services.company_settings import get_company_settings_provider

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting IntelliService Backend...")
    await get_company_settings_provider().refresh()
    start_scheduler()
    yield
    # Shutdown
    logger.info("Shutting down IntelliService Backend...")
    stop_scheduler()


# Initialize FastAPI app
app = FastAPI(
    title="IntelliService API",
    description="Reports, payroll, warranty billing, CRM and technician operations",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware (configure for your domains)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(payroll.router, prefix="/api/payroll", tags=["Payroll"])
app.include_router(ahs.router, prefix="/api/ahs", tags=["AHS Warranty"])
app.include_router(crm.router, prefix="/api/crm", tags=["CRM"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["Technician Tickets"])
app.include_router(tracking.router, prefix="/api/tracking", tags=["Tracking"])
app.include_router(company.router, prefix="/api/company", tags=["Company"])
app.include_router(realtime.router, prefix="/api/realtime", tags=["Real-time"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "IntelliService Backend",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "supabase_configured": bool(os.getenv("SUPABASE_URL")),
        "polling_enabled": os.getenv("POLLING_ENABLED", "true").lower() == "true",
        "company": get_company_settings_provider().snapshot.company_name
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
