import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketplace.config import settings
from marketplace.exceptions import DomainError
from marketplace.middleware import TimingMiddleware
from marketplace.routers import metrics, notifications, reviews, wishlist

logger = logging.getLogger(__name__)

# HTTP status for each domain error kind; the services themselves are transport-agnostic.
ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "duplicate": 409,
    "persistence": 500,
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Marketplace records API starting (%s)", settings.APP_ENV)
    yield
    # Shutdown
    logger.info("Marketplace records API stopped")

app = FastAPI(
    title="Marketplace Records API",
    description="Reviews, notifications and wishlists for the producer/consumer marketplace",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=ERROR_STATUS.get(exc.kind, 500), content=exc.to_dict())

# Routers
app.include_router(reviews.router)
app.include_router(notifications.router)
app.include_router(wishlist.router)
app.include_router(metrics.router)

@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
