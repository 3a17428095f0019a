from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from stripbooth.config import settings
from stripbooth.logging_config import init_logging
from stripbooth.api.dependencies import booth_service, camera_service
from stripbooth.errors import CaptureError
from stripbooth.api.routes import catalog, session, strips, websocket

init_logging(settings.log_level, settings.log_dir)

app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    debug=settings.debug
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(catalog.router, prefix="/api")
app.include_router(session.router, prefix="/api")
app.include_router(strips.router, prefix="/api")
app.include_router(websocket.router)


@app.on_event("startup")
async def startup_event():
    try:
        await booth_service.session.open()
    except CaptureError as e:
        logger.warning(f"Camera not available at startup, will retry on capture: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    await booth_service.close()


@app.get("/health")
async def health_check():
    status = booth_service.status()
    return {"status": "healthy", "camera_active": camera_service.is_streaming, "session_state": status.state}
