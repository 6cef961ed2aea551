# backend/tenanttrack/routers/metrics.py
from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..services.runtime_metrics import METRICS

router = APIRouter(prefix="/metrics", tags=["ops"])


@router.get("", response_class=PlainTextResponse)
def metrics():
    # Prometheus text-ish format; dots are not valid in metric names
    lines = []
    for k, v in METRICS.snapshot().items():
        lines.append(f"tenanttrack_{k.replace('.', '_').replace('-', '_')} {v}")
    return "\n".join(lines) + "\n"
