import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.settings import settings
from .db import Base, engine
from .errors import DispatchError
from .routers import admin, drivers, fares, trips

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Ride Dispatch")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.message, "retryable": exc.retryable},
    )


@app.get("/health")
def health():
    return {"status":"ok"}

app.include_router(drivers.router, prefix="/drivers", tags=["drivers"])
app.include_router(trips.router, prefix="/trips", tags=["trips"])
app.include_router(fares.router, prefix="/fares", tags=["fares"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
