from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from draft.logic.enums import OrderType

_ID_PATTERN = r"^[a-zA-Z0-9_.:-]+$"

EntityId = Annotated[str, Field(min_length=1, max_length=100, pattern=_ID_PATTERN)]


class CreateDraftRequest(BaseModel):
    """Body of POST /drafts. Omitted rounds and timer fall back to server defaults."""

    model_config = ConfigDict(extra="forbid")

    league_id: EntityId
    season_id: EntityId
    name: str = Field(min_length=1, max_length=200)
    team_ids: list[EntityId] = Field(min_length=1, max_length=64)
    total_rounds: int | None = Field(default=None, ge=0, le=100, strict=True)
    pick_timer_seconds: int | None = Field(default=None, ge=1, le=86400, strict=True)
    order_type: OrderType = OrderType.SNAKE
    custom_order: list[EntityId] | None = Field(default=None, max_length=6400)
    auto_pick_enabled: bool = True
    created_by: str = Field(default="system", min_length=1, max_length=100)


class SubmitPickRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    team_id: EntityId
    player_id: EntityId
    picked_by: str = Field(default="", max_length=100)


class UpdateQueueRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    player_ids: list[EntityId] = Field(max_length=500)
    updated_by: str = Field(default="", max_length=100)


class PlayerSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: EntityId
    name: str = Field(min_length=1, max_length=200)
    league_id: EntityId
    position: str = Field(default="", max_length=20)
    draft_value: float = 0.0
    eligible: bool = True


class UpsertPlayersRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    players: list[PlayerSpec] = Field(min_length=1, max_length=2000)
