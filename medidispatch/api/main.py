"""
FastAPI main application for MediDispatch backend.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medidispatch.agents.expiry_monitor import ExpiryMonitor
from medidispatch.api.routes import ambulances, hospitals, reports
from medidispatch.api.websocket import router as ws_router
from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.change_notifier import ChangeNotifier
from medidispatch.core.config import Config
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.errors import DispatchError
from medidispatch.core.query_views import QueryViews
from medidispatch.db.connection import init_db
from medidispatch.models.entity import EntityKind

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    database_url: Optional[str] = None,
    seed_demo_data: Optional[bool] = None,
    poll_interval: Optional[float] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        database_url: SQLAlchemy URL; empty string keeps state in memory only.
            Defaults to Config.DATABASE_URL.
        seed_demo_data: Load demo hospitals/ambulances into an empty store
        poll_interval: Expiry monitor poll interval in seconds
        clock: Store clock override
    """
    db_url = Config.DATABASE_URL if database_url is None else database_url
    seed = Config.SEED_DEMO_DATA if seed_demo_data is None else seed_demo_data

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting MediDispatch backend...")

        notifier = ChangeNotifier(
            max_history=Config.EVENT_HISTORY_SIZE,
            max_pending=Config.SUBSCRIPTION_QUEUE_SIZE,
        )
        session_factory = init_db(db_url) if db_url else None
        store = EntityStore(
            notifier=notifier,
            clock=clock or datetime.now,
            session_factory=session_factory
        )
        store.load()

        engine = AllocationEngine(store)
        views = QueryViews(store)
        monitor = ExpiryMonitor(engine, poll_interval=poll_interval, views=views)

        app.state.notifier = notifier
        app.state.store = store
        app.state.engine = engine
        app.state.views = views
        app.state.monitor = monitor

        if seed and store.count(EntityKind.HOSPITAL) == 0:
            await _initialize_sample_data(engine)

        await monitor.start()
        logger.info("MediDispatch backend started successfully")

        yield

        # Shutdown
        logger.info("Shutting down MediDispatch backend...")
        await monitor.stop()
        notifier.stop()
        logger.info("Backend shutdown complete")

    app = FastAPI(
        title="MediDispatch API",
        description="Emergency dispatch allocation engine: ambulances, hospital beds and reports",
        version="1.0.0",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.kind} ({exc.message})")
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "MediDispatch API",
            "version": "1.0.0",
            "timestamp": datetime.now().isoformat()
        }

    @app.get("/api/health")
    async def health_check(request: Request):
        """Detailed health check."""
        state = request.app.state
        return {
            "status": "healthy",
            "components": {
                "store": state.store.get_state_summary(),
                "notifier": "running" if state.notifier.is_running else "stopped",
                "expiry_monitor": state.monitor.get_status()
            },
            "config": {
                "debug": Config.DEBUG,
                "persistent": bool(db_url),
                "hold_duration_minutes": state.engine.hold_duration.total_seconds() / 60
            }
        }

    @app.get("/api/stats")
    async def get_stats(request: Request):
        """Counts for the dashboard tiles."""
        return request.app.state.views.dispatch_stats().model_dump()

    @app.get("/api/events")
    async def get_events(
        request: Request,
        kind: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
        limit: int = Query(50, ge=1, le=500)
    ):
        """Recent mutation events, most recent first."""
        events = request.app.state.notifier.get_history(kind=kind, entity_id=entity_id, limit=limit)
        return {"events": [e.to_dict() for e in events], "total": len(events)}

    app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
    app.include_router(ambulances.router, prefix="/api/ambulances", tags=["ambulances"])
    app.include_router(hospitals.router, prefix="/api/hospitals", tags=["hospitals"])
    app.include_router(ws_router)

    return app


# ========================
# Sample Data Initialization
# ========================

async def _initialize_sample_data(engine: AllocationEngine) -> None:
    """Initialize sample data for demo purposes."""
    logger.info("Initializing sample data...")

    sample_hospitals = [
        {"id": "H001", "name": "City General Hospital", "address": "12 Main Street",
         "total_beds": 40, "icu_beds": 8, "available_beds": 12, "available_icu_beds": 2},
        {"id": "H002", "name": "St. Mary's Medical Center", "address": "88 Harbor Road",
         "total_beds": 25, "icu_beds": 4, "available_beds": 5, "available_icu_beds": 1},
        {"id": "H003", "name": "Northside Community Hospital", "address": "301 Ridge Avenue",
         "total_beds": 15, "icu_beds": 2, "available_beds": 0, "available_icu_beds": 0},
    ]
    for hospital in sample_hospitals:
        await engine.register_hospital(hospital)

    sample_ambulances = [
        {"id": "A001", "vehicle_number": "AMB-001", "current_location": "Central Station"},
        {"id": "A002", "vehicle_number": "AMB-002", "current_location": "Central Station"},
        {"id": "A003", "vehicle_number": "AMB-014", "current_location": "North Depot"},
        {"id": "A004", "vehicle_number": "AMB-051", "current_location": "Workshop", "status": "maintenance"},
    ]
    for ambulance in sample_ambulances:
        await engine.register_ambulance(ambulance)

    sample_reports = [
        {"patient_name": "John Smith", "patient_age": 67, "patient_phone": "+15550102030",
         "patient_address": "14 Elm Street", "symptoms": "Chest pain and shortness of breath",
         "severity": "critical", "pickup_location": "14 Elm Street"},
        {"patient_name": "Maria Garcia", "patient_age": 45, "patient_phone": "+15550104050",
         "patient_address": "7 Oak Lane", "symptoms": "Severe abdominal pain since morning",
         "severity": "high", "pickup_location": "Oak Lane bus stop"},
    ]
    for report in sample_reports:
        await engine.create_emergency_report(report)

    logger.info(
        f"Initialized {len(sample_hospitals)} hospitals, {len(sample_ambulances)} ambulances "
        f"and {len(sample_reports)} reports"
    )


app = create_app()
