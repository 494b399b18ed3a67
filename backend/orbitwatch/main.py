import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import get_position_provider, router
from .config import settings
from .db import Base, SessionLocal, engine
from .services.ingest_service import IngestService, TLESourceError
from .services.registry import TrackedObjectRegistry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


async def ingestion_loop() -> None:
    while True:
        db = SessionLocal()
        try:
            service = IngestService(TrackedObjectRegistry(db), get_position_provider())
            count = await service.ingest_latest_tles()
            logger.info("Ingested %s tracked objects", count)
        except TLESourceError as exc:
            logger.warning("Ingestion skipped: %s", exc)
            db.rollback()
        except Exception as exc:
            logger.exception("Ingestion failed: %s", exc)
            db.rollback()
        finally:
            db.close()
        await asyncio.sleep(settings.ingestion_interval_hours * 3600)


@app.on_event("startup")
async def startup_event() -> None:
    Base.metadata.create_all(bind=engine)
    if settings.ingestion_enabled:
        asyncio.create_task(ingestion_loop())
    else:
        logger.info("Catalog ingestion disabled; population comes from /api/satellite/add only")


@app.get("/")
def health() -> dict:
    return {
        "name": settings.app_name,
        "status": "ok",
        "disclaimer": "Instantaneous geodetic screening only. Kessler score is a heuristic, not a probability.",
    }
