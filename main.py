import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from centers import DEFAULT_LIMIT, CenterRanker
from config import Settings, configure_logging, load_settings
from database import RecordStore, create_store
from emissions import EmissionTable
from errors import InvalidInput, LedgerError, StoreFailure
from ledger import CarbonLedger, utc_now
from schemas import Center, ScanEntry, UserAccount

logger = logging.getLogger(__name__)

SERVER_ERROR = "Server error"


class ScanRequest(BaseModel):
    userId: Optional[str] = None
    category: Optional[str] = None
    # numeric fields are checked by the ledger so bools and floats are rejected there
    quantity: Any = 1


class NearestRequest(BaseModel):
    latitude: Any = None
    longitude: Any = None
    limit: Any = DEFAULT_LIMIT


def entry_json(entry: ScanEntry, with_co2: bool = True) -> dict:
    out = {
        "category": entry.category,
        "quantity": entry.quantity,
        "totalWeight": entry.total_weight,
    }
    if with_co2:
        out["co2Saved"] = entry.co2_saved
    out["timestamp"] = entry.timestamp
    return out


def get_ledger(request: Request) -> CarbonLedger:
    return request.app.state.ledger


def get_ranker(request: Request) -> CenterRanker:
    return request.app.state.ranker


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    table: Optional[EmissionTable] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Build the API.

    The store, emission table, ledger and ranker are constructed once when the
    app starts and shared through ``app.state``. A store passed in is used as
    is and left open on shutdown; one built from settings is closed.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = store is None
        active_store = create_store(settings) if owned else store
        active_table = table or EmissionTable.from_json(settings.emission_table_path)
        app.state.store = active_store
        app.state.table = active_table
        app.state.ledger = CarbonLedger(active_store, active_table, clock=clock)
        app.state.ranker = CenterRanker(active_store)
        try:
            yield
        finally:
            if owned:
                active_store.close()

    app = FastAPI(
        title="Recycling Carbon Ledger API",
        description="Records recycling scans, tracks CO2 saved per user and finds nearby drop-off centers",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if isinstance(exc, StoreFailure):
            logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message,
                         exc_info=exc)
            return JSONResponse(status_code=exc.status_code, content={"detail": SERVER_ERROR})
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"detail": problems or "Invalid request"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": SERVER_ERROR})

    @app.get("/")
    def read_root():
        return {"message": "Recycling carbon ledger is running"}

    @app.get("/health")
    def health(request: Request):
        store_ok = request.app.state.store.ping()
        return {
            "status": "OK",
            "message": "Server is running",
            "store": "connected" if store_ok else "unavailable",
        }

    @app.get("/schema")
    def get_schema():
        # Expose persisted schemas for the viewer
        return {
            "scanentry": ScanEntry.model_json_schema(by_alias=True),
            "useraccount": UserAccount.model_json_schema(by_alias=True),
            "center": Center.model_json_schema(),
        }

    @app.get("/api/carbon/categories", response_model=dict)
    def list_categories(request: Request):
        table: EmissionTable = request.app.state.table
        factors = [table.lookup(c) for c in table.categories()]
        return {
            "categories": [
                {"category": f.category, "averageWeight": f.average_weight, "recycleFactor": f.recycle_factor}
                for f in factors
            ]
        }

    @app.post("/api/carbon/scan", response_model=dict)
    def record_scan(payload: ScanRequest, ledger: CarbonLedger = Depends(get_ledger)):
        if not payload.userId or not payload.category:
            raise InvalidInput("userId and category are required")
        result = ledger.record_scan(payload.userId, payload.category, payload.quantity)
        return {
            "success": True,
            "co2Saved": result.co2_saved,
            "totalCo2Saved": result.total_co2_saved,
            "entry": entry_json(result.entry, with_co2=False),
        }

    @app.get("/api/carbon/summary/{user_id}", response_model=dict)
    def get_summary(user_id: str, ledger: CarbonLedger = Depends(get_ledger)):
        summary = ledger.get_summary(user_id)
        return {
            "totalCo2Saved": summary.total_co2_saved,
            "weeklyCo2": summary.weekly_co2_saved,
            "pieChartData": [
                {"category": c.category, "co2Saved": c.co2_saved} for c in summary.category_breakdown
            ],
            "recentEntries": [entry_json(e) for e in summary.recent_entries],
        }

    @app.post("/api/location/nearest", response_model=dict)
    def find_nearest(payload: NearestRequest, ranker: CenterRanker = Depends(get_ranker)):
        ranked = ranker.find_nearest(payload.latitude, payload.longitude, limit=payload.limit)
        return {
            "success": True,
            "nearestCenters": [c.model_dump() for c in ranked],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=load_settings().port)
