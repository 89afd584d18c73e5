"""FastAPI app: price services, compose quote breakdowns, and look up travel fees."""

from __future__ import annotations

import sys
import traceback
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load .env when running locally (application/.env or repo root .env / .env.local)
_app_dir = Path(__file__).resolve().parent.parent.parent  # application/
_repo_root = _app_dir.parent
load_dotenv(_app_dir / ".env")
load_dotenv(_app_dir / ".env.local")
load_dotenv(_repo_root / ".env")
load_dotenv(_repo_root / ".env.local")

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import distance, formula_engine, pricing_pipeline
from .models import Service

app = FastAPI(title="Quote Calculator", version="0.1.0")


async def _read_json(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": message})


@app.post("/api/quote/price")
async def price_service(request: Request) -> JSONResponse:
    """Price one service from its definition and the customer's answers."""
    body = await _read_json(request)
    if body is None or not isinstance(body.get("service"), dict):
        return _bad_request("Expected a JSON object with a 'service' definition")
    try:
        service = Service.from_dict(body["service"])
    except (ValueError, TypeError) as exc:
        return _bad_request(f"Invalid service definition: {exc}")

    answers = body.get("answers") or {}
    if not isinstance(answers, dict):
        return _bad_request("'answers' must be an object")
    try:
        result = formula_engine.evaluate_service(service, answers)
    except Exception:
        traceback.print_exc(file=sys.stderr)
        return JSONResponse(status_code=500, content={"detail": "Price calculation failed"})
    return JSONResponse(content=result.to_dict())


@app.post("/api/quote/breakdown")
async def quote_breakdown(request: Request) -> JSONResponse:
    """
    Price every selected service and compose the final breakdown.

    Body: services (definitions), answers (serviceId -> variableId -> value),
    selectedServiceIds, pricing (business options; missing keys mean "off").
    Upsells on offer are the selected services' upsellItems.
    """
    body = await _read_json(request)
    if body is None:
        return _bad_request("Expected a JSON object")
    try:
        services = [Service.from_dict(s) for s in body.get("services") or []]
        options = pricing_pipeline.PricingOptions.from_dict(body.get("pricing"))
    except (ValueError, TypeError, AttributeError) as exc:
        return _bad_request(f"Invalid quote request: {exc}")

    by_id = {s.id: s for s in services}
    selected = [str(sid) for sid in body.get("selectedServiceIds") or [] if str(sid) in by_id]
    answers = body.get("answers") or {}
    if not isinstance(answers, dict):
        return _bad_request("'answers' must be an object")

    try:
        results = formula_engine.price_services([by_id[sid] for sid in selected], answers)
        offered = {u.id: u for u in options.upsells}
        for sid in selected:
            for upsell in by_id[sid].upsell_items:
                offered.setdefault(upsell.id, upsell)
        options.upsells = list(offered.values())
        breakdown = pricing_pipeline.compute_breakdown(
            selected, {sid: r.price for sid, r in results.items()}, options
        )
    except Exception:
        traceback.print_exc(file=sys.stderr)
        return JSONResponse(status_code=500, content={"detail": "Quote calculation failed"})

    return JSONResponse(content={
        "service_prices": {sid: r.price for sid, r in results.items()},
        "breakdown": breakdown.to_dict(),
        "payload": breakdown.to_payload(),
        "errors": [r.error.to_dict() for r in results.values() if r.error],
    })


@app.post("/api/quote/validate")
async def validate_service(request: Request) -> JSONResponse:
    body = await _read_json(request)
    if body is None or not isinstance(body.get("service"), dict):
        return _bad_request("Expected a JSON object with a 'service' definition")
    try:
        service = Service.from_dict(body["service"])
    except (ValueError, TypeError) as exc:
        return JSONResponse(content={"issues": [str(exc)]})
    return JSONResponse(content={"issues": formula_engine.validate_service(service)})


@app.post("/api/distance")
async def distance_fee(request: Request) -> JSONResponse:
    """Travel fee for a customer address; `distance` is null when no fee applies."""
    body = await _read_json(request)
    if body is None:
        return _bad_request("Expected a JSON object")
    raw_settings = body.get("settings")
    try:
        settings = distance.DistanceSettings.from_dict(raw_settings if isinstance(raw_settings, dict) else None)
    except (ValueError, TypeError) as exc:
        return _bad_request(f"Invalid distance settings: {exc}")
    customer_address = str(body.get("customerAddress") or "").strip()
    business_address = str(body.get("businessAddress") or "")
    info = await distance.get_distance_info(business_address, customer_address, settings)
    return JSONResponse(content={
        "customer_address": customer_address,
        "distance": info.to_dict() if info else None,
    })


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
