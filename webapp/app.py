"""FastAPI app exposing the AI pricing agent."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel, field_validator

from utils.exceptions import ConflictError, SearchUnavailableError, ValidationError
from webapp.runtime import get_orchestrator


app = FastAPI(title="PCB AI Pricing Agent API")


class RunPayload(BaseModel):
    dry_run: bool = False
    initiated_by: Optional[str] = None


class PreviewPayload(BaseModel):
    item_id: Optional[str] = None
    name: Optional[str] = None

    @field_validator("item_id", "name", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _dump(model) -> Optional[Dict[str, Any]]:
    return model.model_dump(mode="json") if model is not None else None


@app.get("/api/ai-pricing/health")
def health() -> Dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat(timespec="seconds")}


@app.get("/api/ai-pricing/settings")
def get_settings() -> Dict[str, Any]:
    orchestrator = get_orchestrator()
    return {"settings": _dump(orchestrator.settings_store.get_or_create())}


@app.put("/api/ai-pricing/settings")
def update_settings(payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, Any]:
    orchestrator = get_orchestrator()
    try:
        settings = orchestrator.settings_store.update(payload or {})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"error": exc.message, "details": exc.errors}) from exc
    return {"settings": _dump(settings)}


@app.post("/api/ai-pricing/preview")
def preview(payload: PreviewPayload) -> Dict[str, Any]:
    if not payload.item_id and not payload.name:
        raise HTTPException(status_code=400, detail="item_id or name is required")
    orchestrator = get_orchestrator()
    try:
        result = orchestrator.preview(item_id=payload.item_id, name=payload.name)
    except SearchUnavailableError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc
    if result is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return result.model_dump(mode="json")


@app.post("/api/ai-pricing/run")
def start_run(payload: Optional[RunPayload] = None) -> Dict[str, Any]:
    payload = payload or RunPayload()
    orchestrator = get_orchestrator()
    try:
        started = orchestrator.start(dry_run=payload.dry_run, initiated_by=payload.initiated_by)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return {"ok": True, **started.model_dump(mode="json")}


@app.get("/api/ai-pricing/status")
def get_status() -> Dict[str, Any]:
    return get_orchestrator().status().model_dump(mode="json")


@app.get("/api/ai-pricing/history")
def get_history() -> Dict[str, Any]:
    history = get_orchestrator().history()
    return {"history": [entry.model_dump(mode="json") for entry in history]}


@app.get("/api/ai-pricing/runs/latest")
def get_latest_run() -> Dict[str, Any]:
    return {"report": _dump(get_orchestrator().get_latest_report())}


@app.get("/api/ai-pricing/runs/{run_id}")
def get_run(run_id: str) -> Dict[str, Any]:
    return {"report": _dump(get_orchestrator().get_report(run_id))}


@app.delete("/api/ai-pricing/runs/{run_id}")
def delete_run(run_id: str) -> Dict[str, Any]:
    try:
        deleted = get_orchestrator().delete_report(run_id)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return {"ok": True, "deleted": deleted}


@app.post("/api/ai-pricing/runs/{run_id}/cancel")
def cancel_run(run_id: str) -> Dict[str, Any]:
    canceled = get_orchestrator().cancel(run_id)
    return {"run_id": run_id, "canceled": canceled}
