import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from macai.api.analytics import router as analytics_router
from macai.api.auth import router as auth_router
from macai.api.chat import router as chat_router
from macai.api.emergency import router as emergency_router
from macai.api.facilities import router as facilities_router
from macai.api.health import router as health_router
from macai.core.triage import get_rule_table
from macai.db.session import create_tables

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8080",
    ).split(",")
    if origin.strip()
]

app = FastAPI(title="MAC AI Healthcare Assistant")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    create_tables()
    get_rule_table()


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "MAC AI Healthcare API", "status": "ok"}


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(facilities_router)
app.include_router(emergency_router)
app.include_router(analytics_router)
