from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reimburse import __version__
from reimburse.core.config import get_settings
from reimburse.core.logger import configure_logging
from reimburse.api.routers import expenses, approval_rules

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Expense approval workflow engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(expenses.router, prefix="/api")
app.include_router(approval_rules.router, prefix="/api")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
