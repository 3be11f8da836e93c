# api/main.py

import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import journey, dashboard, kpi
from errors import JourneyError

# Charge .env en local uniquement (en prod les vars sont injectées)
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s : %(message)s",
)
logger = logging.getLogger("customer_journey.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Journey API : démarrage")
    yield
    logger.info("Journey API : arrêt")


app = FastAPI(
    title="Customer Journey API",
    version="1.0.0",
    description="Parcours client, attribution et KPIs",
    lifespan=lifespan,
)

# ─────────────────────────────────────────
# CORS
# ─────────────────────────────────────────
# FRONTEND_ORIGINS="https://app.example.com,https://staging.example.com"
frontend_origins = os.getenv("FRONTEND_ORIGINS", "")
origins = [
    "http://localhost:3000",
    "http://localhost:5173",
]

if frontend_origins:
    origins.extend([o.strip() for o in frontend_origins.split(",") if o.strip()])

origins = sorted(set(origins))

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────
app.include_router(journey.router, prefix="/journey", tags=["journey"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
app.include_router(kpi.router, prefix="/kpi", tags=["kpi"])

# ─────────────────────────────────────────
# HEALTH
# ─────────────────────────────────────────
@app.get("/")
def root() -> dict:
    return {"status": "ok", "service": "journey-api"}

@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "journey-api"}

# ─────────────────────────────────────────
# ERREURS GLOBALES
# ─────────────────────────────────────────
@app.exception_handler(JourneyError)
async def journey_error_handler(request: Request, exc: JourneyError):
    logger.warning(f"Erreur moteur {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": exc.code, "detail": str(exc), "details": exc.details},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Erreur non gérée {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Erreur interne", "detail": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
