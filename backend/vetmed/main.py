"""
VetMed Tracker - Household Veterinary Medication API
Dose recording, inventory, co-signing and compliance insights for pet households.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .models.base import Base, engine
from . import models  # noqa: F401  Ensure every table is registered
from .api import administrations, regimens, inventory, cosign, insights, admin
from .core.audit_middleware import AuditMiddleware
from .services.exceptions import DomainError
from .seed_demo import seed_demo_data

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create all database tables
# NOTE: In production, use Alembic migrations instead of create_all()
Base.metadata.create_all(bind=engine)

# Seed a demo household (idempotent)
if settings.SEED_DEMO_DATA:
    seed_demo_data()

app = FastAPI(
    title="VetMed Tracker API",
    description=(
        "Household veterinary medication tracking: record doses against schedules, "
        "manage inventory, co-sign high-risk administrations, and review compliance."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: Restrict to specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(administrations.router, prefix="/api/v1")
app.include_router(regimens.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(cosign.router, prefix="/api/v1")
app.include_router(insights.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.VERSION}
