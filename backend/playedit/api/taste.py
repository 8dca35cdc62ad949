"""
Taste API — /taste
──────────────────
Endpoints:
  GET /taste/{owner_id}/match/{friend_id}  — Taste match vs. another user
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from playedit.db.session import get_db
from playedit.db.store import RankingStore
from playedit.schemas.taste import TasteMatchResponse
from playedit.services.taste_match import compare_taste

router = APIRouter()


def _error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


@router.get("/{owner_id}/match/{friend_id}", response_model=TasteMatchResponse)
def get_taste_match(
    owner_id: str,
    friend_id: str,
    db: Session = Depends(get_db),
) -> dict:
    store = RankingStore(db)
    friend_username = store.username(friend_id)
    if friend_username is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error("USER_NOT_FOUND", f"User {friend_id} not found"),
        )

    result = compare_taste(store.fetch_game_data(owner_id), store.fetch_friend_games(friend_id))
    return {
        **result.model_dump(),
        "owner_id": owner_id,
        "friend_id": friend_id,
        "friend_username": friend_username,
    }
