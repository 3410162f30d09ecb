from typing import Optional

from pydantic import BaseModel, ConfigDict


class SquadIdentity(BaseModel):
    """Squad key that stays unique across a match.

    squad_id alone is only unique within a team, and squads are recreated
    every match, so the creator is part of the key.
    """

    model_config = ConfigDict(frozen=True)

    squad_id: str
    team_id: str
    creator_id: str

    @property
    def key(self) -> str:
        return f"{self.squad_id}_{self.team_id}_{self.creator_id}"

    def __str__(self) -> str:
        return self.key


class Squad(BaseModel):
    """Roster snapshot of a squad."""

    squad_id: str
    team_id: str
    squad_name: str = ""
    creator_id: str
    locked: bool = False

    @property
    def identity(self) -> SquadIdentity:
        return SquadIdentity(
            squad_id=self.squad_id, team_id=self.team_id, creator_id=self.creator_id
        )


class Player(BaseModel):
    """Roster snapshot of a player."""

    player_id: str  # Steam ID on the host
    name: str = ""
    team_id: Optional[str] = None
    squad_id: Optional[str] = None
    role: str = ""
    is_leader: bool = False
    squad: Optional[Squad] = None  # Resolved by the host, None when not in a squad
