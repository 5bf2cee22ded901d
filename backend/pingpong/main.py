import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pingpong.database import init_db
from pingpong.routes import matches, players, ranking, tournaments
from pingpong.services.errors import EngineError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ping Pong Tournament API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
def engine_error_handler(request: Request, exc: EngineError):
    """Every engine rejection becomes {"detail", "error"} with the error's HTTP status"""
    logger.info(f"{request.method} {request.url.path} rejected ({exc.kind}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.kind})


# Include routers
app.include_router(players.router, prefix="/api", tags=["players"])
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(ranking.router, prefix="/api", tags=["ranking"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"Registered {len(app.routes)} routes")


@app.get("/api/health")
def health_check():
    return {"app_name": "Ping Pong Tournament API", "status": "healthy"}
