from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inspection_report.config import settings
from inspection_report.api.routes import router

app = FastAPI(
    title="Vehicle Inspection Report Engine",
    description=(
        "Compose vehicle inspection reports: annotated body and tire "
        "diagrams, checklist, photographs and verdict, as sections or PDF."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/")
async def root():
    return {
        "name": "Vehicle Inspection Report Engine",
        "version": "1.0.0",
        "endpoints": {
            "api_docs": "/docs",
            "health": "/health",
            "sections": "POST /api/v1/reports/sections",
            "pdf": "POST /api/v1/reports/pdf",
            "severity": "GET /api/v1/severity?value=...",
            "add_damage_point": "POST /api/v1/annotations/damage-points",
            "remove_damage_point": "DELETE /api/v1/annotations/damage-points/{number}",
            "tire_measurement": "PUT /api/v1/annotations/tires/{position}",
        },
    }


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
