"""HTTP route definitions for the service."""

from __future__ import annotations

import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST

from app.schemas import (
    CalibrationResponse,
    PourOut,
    RefillResponse,
    StateOut,
)
from services.errors import InvalidCalibrationError, KegNotFoundError
from services.state import GlobalState, build_default_state
from settings import get_settings

router = APIRouter()


def get_state() -> GlobalState:
    return build_default_state()


@router.get(
    "/state",
    response_model=StateOut,
    summary="Consistent snapshot of every keg and sensor.",
)
async def read_state(state: GlobalState = Depends(get_state)) -> StateOut:
    return StateOut.model_validate(state.snapshot())


@router.get(
    "/refill",
    response_model=RefillResponse,
    summary="Reset a keg's dispensed volume, optionally changing its contents.",
)
async def refill_keg(
    pin: int = Query(..., description="Flow meter pin of the keg."),
    contents: Optional[str] = Query(None, description="New contents; keeps the current ones if omitted."),
    state: GlobalState = Depends(get_state),
) -> RefillResponse:
    try:
        current = state.refill(pin, contents or None)
    except KegNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return RefillResponse(pin=pin, contents=current)


@router.get(
    "/calibrate",
    response_model=CalibrationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Set or scale a keg's flow constant.",
)
async def calibrate_keg(
    response: Response,
    pin: int = Query(..., description="Flow meter pin of the keg."),
    constant: Optional[str] = Query(None, description="Absolute flow constant."),
    coefficient: Optional[str] = Query(
        None, description="Multiplier applied to the current constant; repeated calls compound."
    ),
    state: GlobalState = Depends(get_state),
) -> CalibrationResponse:
    try:
        result = state.calibrate(pin, constant=constant or None, coefficient=coefficient or None)
    except KegNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidCalibrationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    if not result.applied:
        response.status_code = status.HTTP_200_OK
    return CalibrationResponse(
        pin=pin,
        flow_constant=result.flow_constant,
        previous_constant=result.previous_constant,
        applied=result.applied,
    )


@router.get(
    "/pours",
    response_model=List[PourOut],
    summary="Most recent pours across all kegs, newest first.",
)
async def list_pours(
    limit: Optional[int] = Query(None, ge=0, description="Defaults to KEGERATOR_POUR_LIMIT."),
    state: GlobalState = Depends(get_state),
) -> List[PourOut]:
    effective = limit if limit is not None else get_settings().pour_limit
    return [PourOut.model_validate(pour) for pour in state.list_pours(effective)]


@router.get("/metrics", summary="Prometheus exposition of sensor and keg metrics.")
def metrics(state: GlobalState = Depends(get_state)) -> Response:
    started = time.perf_counter()
    state.record_pour_metrics()
    payload = state.metrics.render()
    state.metrics.observe_request("/metrics", time.perf_counter() - started)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /state for kegs and sensors."}
