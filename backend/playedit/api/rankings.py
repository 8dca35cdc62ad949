"""
Rankings API — /rankings
──────────────────────────
Endpoints:
  GET    /rankings/{owner_id}                    — Ranked + unranked lists
  POST   /rankings/{owner_id}/place              — Rank a game at a position
  PATCH  /rankings/{owner_id}/move               — Move a ranked game
  POST   /rankings/{owner_id}/{item_id}/unrank   — Take a game out of the ranking
  DELETE /rankings/{owner_id}/{item_id}          — Remove a game (204)

Each write loads a RankOrder snapshot, applies one operation to it and
persists the resulting shifts in a single transaction.
"""
import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from playedit.db.session import get_db
from playedit.db.store import RankingStore, StoreError
from playedit.schemas.rankings import (
    MoveRankingRequest,
    PlaceRankingRequest,
    PositionShift,
    RankingChangeResponse,
    RankingListResponse,
)
from playedit.services.rank_order import (
    DuplicateItemError,
    InvalidPositionError,
    RankingNotFoundError,
    RankOrder,
    RankOrderInvariantError,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def _load(store: RankingStore, owner_id: str) -> RankOrder:
    try:
        return store.load_order(owner_id)
    except RankOrderInvariantError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("RANKING_INVARIANT", str(exc)),
        ) from exc


def _change(
    db: Session,
    owner_id: str,
    operation: Callable[[RankOrder], list[PositionShift]],
    *,
    deleted_item_ids: tuple[int, ...] = (),
) -> dict:
    store = RankingStore(db)
    order = _load(store, owner_id)

    try:
        shifts = operation(order)
        store.apply_shift(owner_id, shifts, deleted_item_ids=deleted_item_ids)
    except InvalidPositionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error("INVALID_POSITION", str(exc)),
        ) from exc
    except RankingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("RANKING_NOT_FOUND", str(exc)),
        ) from exc
    except DuplicateItemError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("DUPLICATE_RANKING", str(exc)),
        ) from exc
    except (RankOrderInvariantError, StoreError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error("CHANGE_REJECTED", str(exc)),
        ) from exc

    return {"owner_id": owner_id, "shifts": shifts, "ranked": order.ranked}


# ── Routes ────────────────────────────────────────────────────────────────────


@router.get("/{owner_id}", response_model=RankingListResponse)
def get_rankings(owner_id: str, db: Session = Depends(get_db)) -> dict:
    """Ranked games by position, then unranked games oldest first."""
    order = _load(RankingStore(db), owner_id)
    return {"owner_id": owner_id, "ranked": order.ranked, "unranked": order.unranked}


@router.post(
    "/{owner_id}/place",
    response_model=RankingChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
def place_ranking(
    owner_id: str,
    payload: PlaceRankingRequest,
    db: Session = Depends(get_db),
) -> dict:
    """
    Put a game at *position* (usually the position a comparison session
    resolved to). An unranked game leaves the unranked list; a game the
    owner never logged is added. If the game had been recommended, the
    recommendation is closed with its prediction outcome.
    """
    result = _change(db, owner_id, lambda order: order.rank(payload.item_id, payload.position))
    try:
        RankingStore(db).record_outcome(
            owner_id, payload.item_id, payload.position, len(result["ranked"])
        )
    except StoreError:
        # the placement is already committed
        logger.exception("owner=%s item=%d outcome not recorded", owner_id, payload.item_id)
    return result


@router.patch("/{owner_id}/move", response_model=RankingChangeResponse)
def move_ranking(
    owner_id: str,
    payload: MoveRankingRequest,
    db: Session = Depends(get_db),
) -> dict:
    """Re-rank an already ranked game."""
    return _change(
        db,
        owner_id,
        lambda order: order.rerank(payload.item_id, payload.new_position),
    )


@router.post("/{owner_id}/{item_id}/unrank", response_model=RankingChangeResponse)
def unrank_game(owner_id: str, item_id: int, db: Session = Depends(get_db)) -> dict:
    """Move a ranked game back to the unranked list; positions below close up."""
    return _change(db, owner_id, lambda order: order.unrank(item_id))


@router.delete("/{owner_id}/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_game(owner_id: str, item_id: int, db: Session = Depends(get_db)) -> None:
    """Remove a game from the owner's library, ranked or not."""

    def remove(order: RankOrder) -> list[PositionShift]:
        if order.is_ranked(item_id):
            return order.remove_at(order.position_of(item_id))
        if any(item.item_id == item_id for item in order.unranked):
            return []
        raise RankingNotFoundError(f"Item {item_id} is not in this list")

    _change(db, owner_id, remove, deleted_item_ids=(item_id,))
