from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from loguru import logger

from squad_role_ban.models.roster import Player, Squad

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class GameServer:
    """Roster snapshot of the host plus the events it publishes.

    Players are stored without their squad; lookups attach the squad the
    player currently belongs to, so callers always see live membership.
    """

    def __init__(
        self,
        players: Optional[Iterable[Player]] = None,
        squads: Optional[Iterable[Squad]] = None,
    ):
        self._players: Dict[str, Player] = {}
        self._squads: Dict[tuple, Squad] = {}
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

        for squad in squads or []:
            self.upsert_squad(squad)
        for player in players or []:
            self.upsert_player(player)

    # --- Events ---

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        """Runs the handlers of an event one after another, in subscription order."""
        handlers = self._handlers.get(event, [])
        if not handlers:
            logger.debug(f"No handlers for event {event}")
            return

        for handler in handlers:
            try:
                await handler(data)
            except Exception as e:
                logger.exception(
                    f"Handler {getattr(handler, '__qualname__', handler)} failed on {event}: {e}"
                )

    # --- Roster ---

    @property
    def squads(self) -> List[Squad]:
        return list(self._squads.values())

    @property
    def players(self) -> List[Player]:
        return [self._with_squad(player) for player in self._players.values()]

    async def get_player_by_id(self, player_id: str) -> Optional[Player]:
        player = self._players.get(player_id)
        if player is None:
            return None
        return self._with_squad(player)

    def get_squad(self, team_id: Optional[str], squad_id: Optional[str]) -> Optional[Squad]:
        if team_id is None or squad_id is None:
            return None
        return self._squads.get((team_id, squad_id))

    def upsert_squad(self, squad: Squad) -> None:
        self._squads[(squad.team_id, squad.squad_id)] = squad

    def remove_squad(self, team_id: str, squad_id: str) -> None:
        self._squads.pop((team_id, squad_id), None)

    def upsert_player(self, player: Player) -> None:
        self._players[player.player_id] = player.model_copy(update={"squad": None})

    def update_player(self, player_id: str, **changes: Any) -> Optional[Player]:
        player = self._players.get(player_id)
        if player is None:
            logger.warning(f"Cannot update unknown player {player_id}")
            return None
        self._players[player_id] = player.model_copy(update=changes)
        return self._with_squad(self._players[player_id])

    def remove_player(self, player_id: str) -> None:
        self._players.pop(player_id, None)

    def clear(self) -> None:
        self._players.clear()
        self._squads.clear()

    def _with_squad(self, player: Player) -> Player:
        squad = self.get_squad(player.team_id, player.squad_id)
        return player.model_copy(update={"squad": squad})
