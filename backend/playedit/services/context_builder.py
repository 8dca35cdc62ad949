"""
Builds a PredictionContext from the store collaborator.

Fetch once per screen, then call PredictionEngine.predict() for as many
candidate games as needed.
"""
import logging
from typing import Protocol

from playedit.schemas.predictions import (
    FriendData,
    FriendRankedGame,
    PredictionContext,
    RankedGameData,
)
from playedit.services.taste_match import compute_taste_match

logger = logging.getLogger(__name__)

DEFAULT_FRIEND_NAME = "Friend"


class ContextSource(Protocol):
    """The read side of the store collaborator this builder relies on."""

    def fetch_game_data(self, owner_id: str) -> list[RankedGameData]: ...

    def accepted_friend_ids(self, owner_id: str) -> list[str]: ...

    def username(self, user_id: str) -> str | None: ...

    def fetch_friend_games(self, friend_id: str) -> list[FriendRankedGame]: ...


def build_context(store: ContextSource, owner_id: str) -> PredictionContext:
    """Owner's ranked corpus plus every accepted friend's list and taste match."""
    my_games = store.fetch_game_data(owner_id)

    friends = []
    for friend_id in store.accepted_friend_ids(owner_id):
        games = store.fetch_friend_games(friend_id)
        friends.append(FriendData(
            user_id=friend_id,
            username=store.username(friend_id) or DEFAULT_FRIEND_NAME,
            taste_match=compute_taste_match(my_games, games),
            games=games,
        ))

    logger.debug(
        "context for owner=%s: %d games, %d friends",
        owner_id,
        len(my_games),
        len(friends),
    )
    return PredictionContext(my_games=my_games, friends=friends)
