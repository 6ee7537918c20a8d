import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from medisync import config
from medisync.db import engine, init_db
from medisync.errors import CollaboratorUnavailable, InvalidStatusTransition, RecordNotFound, StoreError
from medisync.routes import appointments, doctors, intake, patients, phone, prescriptions
from medisync.seed import seed_all
from medisync.services.ai import PrescriptionSuggester, ShiftSummarizer, TranscriptExtractor
from medisync.services.persistence import SQLModelStore
from medisync.services.record_store import RecordStore
from medisync.services.roster import DoctorRoster


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(bind=None, extractor=None, suggester=None, summarizer=None, seed=None) -> FastAPI:
    bind = bind if bind is not None else engine
    seed = config.SEED_ON_STARTUP if seed is None else seed
    backend = SQLModelStore(bind)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(bind)
        if seed:
            try:
                seed_all(bind)
            except Exception as e:
                logger.warning(f"Failed to seed data: {e}")
        app.state.roster = await DoctorRoster.load(backend)
        await app.state.store.refresh()
        yield
        for assistant in app.state.assistants.values():
            assistant.close()

    app = FastAPI(title="MediSync Front Desk", docs_url="/docs", redoc_url="/redoc", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify exact origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.backend = backend
    app.state.store = RecordStore(backend)
    app.state.roster = DoctorRoster()
    app.state.extractor = extractor or TranscriptExtractor()
    app.state.suggester = suggester or PrescriptionSuggester()
    app.state.summarizer = summarizer or ShiftSummarizer()
    app.state.assistants = {}
    app.state.phone_calls = {}

    app.include_router(patients.router, prefix="/api")
    app.include_router(appointments.router, prefix="/api")
    app.include_router(doctors.router, prefix="/api")
    app.include_router(prescriptions.router, prefix="/api")
    app.include_router(intake.router)
    app.include_router(phone.router, prefix="/api")

    @app.exception_handler(RecordNotFound)
    async def record_not_found(request: Request, exc: RecordNotFound):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(InvalidStatusTransition)
    async def invalid_transition(request: Request, exc: InvalidStatusTransition):
        return JSONResponse({"detail": str(exc)}, status_code=409)

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.error(f"Store error on {request.url.path}: {exc}")
        return JSONResponse({"detail": "The record store is unavailable. Please retry."}, status_code=503)

    @app.exception_handler(CollaboratorUnavailable)
    async def collaborator_unavailable(request: Request, exc: CollaboratorUnavailable):
        logger.warning(f"Collaborator unavailable on {request.url.path}: {exc}")
        return JSONResponse({"detail": "AI service is unavailable. Please try again."}, status_code=502)

    @app.get("/")
    async def home():
        return {"status": "ok", "message": "MediSync Front Desk: visit /docs"}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "patients": len(app.state.store.patients),
            "appointments": len(app.state.store.appointments),
            "doctors": len(app.state.roster),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
