"""
Recommendations API — /recommendations
────────────────────────────────────────
Endpoints:
  GET  /recommendations/{owner_id}                               — Pending list, topped up to the slot count
  POST /recommendations/{owner_id}/{recommendation_id}/dismiss   — Hide for six months
  POST /recommendations/{owner_id}/{recommendation_id}/want-to-play — Save for later
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from playedit.core.config import settings
from playedit.db.session import get_db
from playedit.db.store import RankingStore, StoreError
from playedit.schemas.recommendations import (
    DismissRequest,
    RecommendationListResponse,
    RecommendationState,
)
from playedit.services.context_builder import build_context
from playedit.services.recommendation_service import (
    GENRE_CANDIDATE_MIN_METACRITIC,
    RecommendationStateError,
    gather_friend_candidates,
    gather_genre_candidates,
    open_slots,
    score_candidates,
)

router = APIRouter()

GENRE_POOL_SIZE = 50


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def _acted(state: RecommendationState | None, recommendation_id: int) -> RecommendationState:
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("RECOMMENDATION_NOT_FOUND", f"No recommendation {recommendation_id}"),
        )
    return state


def _refill(store: RankingStore, owner_id: str, slots: int) -> None:
    context = build_context(store, owner_id)
    excluded = store.library_item_ids(owner_id) | store.recommendation_exclusions(owner_id)

    friend_item_ids = {game.item_id for friend in context.friends for game in friend.games}
    candidates = gather_friend_candidates(context, store.catalog(friend_item_ids), excluded)
    excluded |= {c.game.item_id for c in candidates}
    candidates += gather_genre_candidates(
        context,
        store.top_rated_games(GENRE_CANDIDATE_MIN_METACRITIC, GENRE_POOL_SIZE),
        excluded,
    )

    fresh = score_candidates(
        candidates,
        context,
        slots=slots,
        min_percentile=settings.RECOMMENDATION_MIN_PERCENTILE,
    )
    store.save_recommendations(owner_id, fresh)


# ── Routes ────────────────────────────────────────────────────────────────────


@router.get("/{owner_id}", response_model=RecommendationListResponse)
def get_recommendations(owner_id: str, db: Session = Depends(get_db)) -> dict:
    """
    The owner's pending recommendations. Free slots are filled with new
    friend-ranked and genre-discovery picks first.
    """
    store = RankingStore(db)
    pending = store.pending_recommendations(owner_id)
    slots = open_slots(len(pending), settings.RECOMMENDATION_SLOTS)
    if slots:
        try:
            _refill(store, owner_id, slots)
        except StoreError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=_error("CHANGE_REJECTED", str(exc)),
            ) from exc
        pending = store.pending_recommendations(owner_id)
    return {"owner_id": owner_id, "recommendations": pending}


@router.post("/{owner_id}/{recommendation_id}/dismiss", response_model=RecommendationState)
def dismiss_recommendation(
    owner_id: str,
    recommendation_id: int,
    payload: DismissRequest | None = None,
    db: Session = Depends(get_db),
) -> RecommendationState:
    """Hide a recommendation; the game is not suggested again for six months."""
    reason = payload.reason if payload else None
    try:
        state = RankingStore(db).dismiss_recommendation(owner_id, recommendation_id, reason)
    except RecommendationStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("RECOMMENDATION_CLOSED", str(exc)),
        ) from exc
    return _acted(state, recommendation_id)


@router.post("/{owner_id}/{recommendation_id}/want-to-play", response_model=RecommendationState)
def save_recommendation(
    owner_id: str,
    recommendation_id: int,
    db: Session = Depends(get_db),
) -> RecommendationState:
    """Add the recommended game to the owner's want-to-play list."""
    try:
        state = RankingStore(db).save_for_later(owner_id, recommendation_id)
    except RecommendationStateError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("RECOMMENDATION_CLOSED", str(exc)),
        ) from exc
    return _acted(state, recommendation_id)
