import logging
import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from constructmart.api.health import router as health_router
from constructmart.api.routes_auth import router as auth_router
from constructmart.api.routes_cart import router as cart_router
from constructmart.api.routes_catalogue import category_router
from constructmart.api.routes_catalogue import router as catalogue_router
from constructmart.api.routes_notifications import router as notifications_router
from constructmart.api.routes_order import router as order_router
from constructmart.api.routes_promotions import router as promotions_router
from constructmart.api.routes_reviews import router as reviews_router
from constructmart.api.routes_seller_products import router as seller_products_router
from constructmart.api.routes_users import company_router
from constructmart.api.routes_users import router as users_router
from constructmart.api.routes_wishlists import router as wishlists_router
from constructmart.api.routes_ws import router as ws_router
from constructmart.config import settings
from constructmart.db import SessionLocal, init_db
from constructmart.errors import setup_error_handlers
from constructmart.logging_config import setup_logging
from constructmart.middleware import RequestLoggingMiddleware
from constructmart.services.promotion_service import refresh_promotion_statuses

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def promotion_status_job():
    db = SessionLocal()
    try:
        refresh_promotion_statuses(db)
    except Exception:
        logger.exception("Promotion status refresh failed")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            promotion_status_job,
            "interval",
            seconds=settings.PROMOTION_REFRESH_SECONDS,
            id="refresh_promotion_statuses",
        )
        scheduler.start()
        logger.info("Scheduler started (promotion refresh every %ss)", settings.PROMOTION_REFRESH_SECONDS)
    app.state.scheduler = scheduler

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)


app = FastAPI(title="ConstructMart - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

setup_error_handlers(app)

app.include_router(health_router, prefix="/api", tags=["health"])
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(company_router)
app.include_router(catalogue_router)
app.include_router(category_router)
app.include_router(reviews_router)
app.include_router(cart_router)
app.include_router(wishlists_router)
app.include_router(order_router)
app.include_router(seller_products_router)
app.include_router(promotions_router)
app.include_router(notifications_router)
app.include_router(ws_router)

os.makedirs(settings.STORAGE_DIR, exist_ok=True)
app.mount("/storage", StaticFiles(directory=settings.STORAGE_DIR), name="storage")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("constructmart.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.DEBUG)
