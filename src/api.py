"""
FastAPI boundary for the health signal engine.

Every request builds its own engine and recomputes from the posted records;
there is no shared result cache. Shared utilities live in routes/helpers.py.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pipeline.insights_payload import build_insights_payload
from record_normalizer import PayloadError, parse_payload
from routes.helpers import _to_jsonable
from settings import AnalysisConfig
from signal_engine import HealthSignalEngine

load_dotenv()

log = logging.getLogger("api")


# ─── App setup ─────────────────────────────────────────────

app = FastAPI(title="Health Signals API", version="1.0.0")

_origin_env = os.getenv("FRONTEND_ORIGINS", "")
_origins = [o.strip() for o in _origin_env.split(",") if o.strip()] or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


class AnalysisFailure(BaseModel):
    analysis_status: str = "failed"
    degraded_reasons: List[str]
    errors: List[str]


def _config(allow_partial: bool = False) -> AnalysisConfig:
    config = AnalysisConfig.from_env(env=dict(os.environ))
    if allow_partial:
        config = config.with_overrides(fail_on_validation_errors=False)
    return config


def _run(payload: Any, tz: Optional[str], config: AnalysisConfig) -> Dict[str, Any]:
    try:
        parsed = parse_payload(payload)
    except PayloadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = HealthSignalEngine(config).analyze(parsed, time_zone=tz)
    if result["analysis_status"] == "failed":
        log.warning("Analysis failed: %s", ", ".join(result["degraded_reasons"]))
        raise HTTPException(
            status_code=422,
            detail=AnalysisFailure(
                degraded_reasons=result["degraded_reasons"],
                errors=result["errors"],
            ).model_dump(),
        )
    return result


# ─── Routes ────────────────────────────────────────────────

@app.get("/")
def root() -> Dict[str, Any]:
    return {"service": "health-signals-api", "status": "ok"}


@app.get("/health-check")
def health_check() -> JSONResponse:
    return JSONResponse({"status": "Online", "message": "Online"})


@app.post("/api/v1/analyze")
def analyze(
    payload: Any = Body(...),
    tz: Optional[str] = Query(default=None),
    allow_partial: bool = Query(default=False),
) -> Dict[str, Any]:
    return _to_jsonable(_run(payload, tz, _config(allow_partial)))


@app.post("/api/v1/insights-payload")
def insights_payload(
    payload: Any = Body(...),
    tz: Optional[str] = Query(default=None),
    day_key: Optional[str] = Query(default=None),
    allow_partial: bool = Query(default=False),
) -> Dict[str, Any]:
    config = _config(allow_partial)
    result = _run(payload, tz, config)
    out = build_insights_payload(
        result["days"],
        time_zone=result["time_zone"],
        day_key=day_key,
        config=config,
    )
    return _to_jsonable(out)
