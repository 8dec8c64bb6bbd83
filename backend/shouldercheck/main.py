"""
FastAPI Entry Point for ShoulderCheck
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shouldercheck.config.base import settings
from shouldercheck.routers.assessment import SessionRegistry
from shouldercheck.routers.assessment import router as assessment_router
from shouldercheck.routers.intake import router as intake_router
from shouldercheck.services.camera import CameraPool
from shouldercheck.utils.logger import get_logger

logger = get_logger(__name__)
logger.info("🚀 Starting ShoulderCheck API initialization...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.sessions = SessionRegistry(ttl_seconds=settings.SESSION_TTL_SECONDS)
    app.state.cameras = CameraPool(frame_size=settings.FRAME_SIZE)
    yield
    # Release cameras and models held by abandoned sessions
    await app.state.sessions.close_all()
    app.state.cameras.close_all()
    speech = getattr(app.state, "speech_service", None)
    if speech is not None:
        await speech.aclose()
    logger.info("👋 ShoulderCheck API shut down")


app = FastAPI(
    title="ShoulderCheck API",
    description="Guided shoulder pain intake with camera-based range-of-motion assessment",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else settings.ALLOWED_HOSTS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

app.include_router(intake_router)
app.include_router(assessment_router)


@app.get("/")
async def root():
    return {"message": "ShoulderCheck API", "version": settings.VERSION}


@app.get("/health")
async def health_check():
    sessions = getattr(app.state, "sessions", None)
    return {
        "status": "healthy",
        "active_sessions": len(sessions) if sessions is not None else 0,
        "services": {
            "pose_estimation": {
                "backend": settings.POSE_BACKEND,
                "model_present": os.path.exists(settings.POSE_MODEL_PATH),
            },
            "openai": "configured" if settings.OPENAI_API_KEY else "not configured",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("shouldercheck.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
