"""
Comparisons API — /comparisons
────────────────────────────────
Stateless head-to-head steps. The client holds the session snapshot and
sends it back with every answer; nothing is stored server-side.

Endpoints:
  POST /comparisons/start   — Open a session for a new game
  POST /comparisons/choose  — Answer the current head-to-head
  POST /comparisons/undo    — Take back the last answer
"""
from fastapi import APIRouter, HTTPException, status

from playedit.schemas.comparisons import (
    ChooseRequest,
    ComparisonStepResponse,
    StartComparisonRequest,
    UndoRequest,
)
from playedit.services.comparison_session import ComparisonSession, ComparisonSessionError

router = APIRouter()


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def _step(session: ComparisonSession) -> dict:
    return {
        "session": session.snapshot(),
        "current_opponent_id": session.current_opponent_id,
        "resolved_position": session.resolved_position,
        "can_undo": session.can_undo,
        "estimated_total": session.estimated_total,
    }


def _restore(snapshot) -> ComparisonSession:
    try:
        return ComparisonSession.from_snapshot(snapshot)
    except ComparisonSessionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error("INVALID_SESSION", str(exc)),
        ) from exc


@router.post("/start", response_model=ComparisonStepResponse)
def start_comparison(payload: StartComparisonRequest) -> dict:
    """An empty list resolves immediately at #1."""
    if payload.new_item_id in payload.existing_item_ids:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("ALREADY_RANKED", f"Item {payload.new_item_id} is already ranked"),
        )
    return _step(ComparisonSession(payload.new_item_id, payload.existing_item_ids))


@router.post("/choose", response_model=ComparisonStepResponse)
def choose(payload: ChooseRequest) -> dict:
    session = _restore(payload.session)
    try:
        session.apply(payload.choice)
    except ComparisonSessionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("SESSION_STATE", str(exc)),
        ) from exc
    return _step(session)


@router.post("/undo", response_model=ComparisonStepResponse)
def undo(payload: UndoRequest) -> dict:
    session = _restore(payload.session)
    try:
        restored = session.undo()
    except ComparisonSessionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("SESSION_STATE", str(exc)),
        ) from exc
    if restored is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("NOTHING_TO_UNDO", "No comparison to undo"),
        )
    return _step(session)
