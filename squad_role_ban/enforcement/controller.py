import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

from squad_role_ban.host.game_server import GameServer
from squad_role_ban.models.enums import ComplianceState, ServerEvent, TagType
from squad_role_ban.models.roster import Player, Squad
from squad_role_ban.models.tags import TagCatalog
from squad_role_ban.policy.evaluator import RoleVerdict, evaluate_role
from squad_role_ban.storage.supabase_client import SupabaseTagStore
from squad_role_ban.tags.registry import SquadTagRegistry
from .warn_scheduler import WarnScheduler

Notify = Callable[[str, str], Awaitable[None]]


def extract_command_args(text: str) -> List[str]:
    return [value.lower().strip() for value in text.split(" ")]


def violation_message(verdict: RoleVerdict) -> str:
    tag = verdict.blocking_tag
    effect = "allowed" if tag.type == TagType.POSITIVE else "forbidden"
    return (
        "This role is not available in this squad!\n\n"
        f"Squad is marked as {tag.token}, {effect}: '{verdict.blocking_setting.readable_name}'"
    )


class ComplianceController:
    """Keeps squad members' roles in line with their squad's tags.

    Reacts to host events, evaluates the squad policy for the affected
    players, and starts or stops their repeated warnings. Also serves the
    chat command that lets leaders set and clear tags.
    """

    def __init__(
        self,
        server: GameServer,
        notify: Notify,
        catalog: TagCatalog,
        warn_interval: float,
        main_command: str = "tags",
        help_message_interval: float = 3.0,
        store: Optional[SupabaseTagStore] = None,
    ):
        self.server = server
        self.notify = notify
        self.catalog = catalog
        self.main_command = main_command
        self.help_message_interval = help_message_interval
        self.store = store

        self.registry = SquadTagRegistry(catalog)
        self.warn_scheduler = WarnScheduler(notify, warn_interval)
        # Only players that are checked and eligible; UNMONITORED is the default
        self._states: Dict[str, ComplianceState] = {}
        self._delivery_tasks: Set[asyncio.Task] = set()

        usage = (
            f"Set: !{main_command} +[tag] -[tag]\n"
            f"Clear: !{main_command} clear\n"
            f"Help: !{main_command} help"
        )
        self.short_help_messages = [usage]
        self.full_help_messages = [
            "Squad tags forbid or allow roles",
            usage,
            "Available tags:",
        ] + [
            f"{', '.join(tag_setting.tags)} - {tag_setting.readable_name}"
            for tag_setting in catalog.tag_settings
        ]

    async def mount(self) -> None:
        self.server.on(ServerEvent.PLAYER_ROLE_CHANGE.value, self.on_player_role_change)
        self.server.on(ServerEvent.PLAYER_NOW_IS_NOT_LEADER.value, self.on_player_not_leader)
        self.server.on(ServerEvent.NEW_GAME.value, self.on_new_game)
        self.server.on(ServerEvent.SQUAD_CREATED.value, self.on_squad_created)
        self.server.on(
            f"{ServerEvent.CHAT_COMMAND.value}:{self.main_command}", self.on_chat_command
        )

        restored: Set[str] = set()
        if self.store:
            state = await self.store.load_all()
            if state:
                restored = self.registry.import_state(state)

        for squad in self.server.squads:
            if squad.identity.key not in restored:
                self.registry.derive_from_name(squad)

        logger.info("Squad role ban has been mounted")

    # --- Event handlers ---

    async def on_player_role_change(self, data: Dict[str, Any]) -> None:
        player = data.get("player")
        if player:
            await self.check_role(player, data.get("new_role", player.role))

    async def on_player_not_leader(self, data: Dict[str, Any]) -> None:
        player = data.get("player")
        if player:
            await self.check_role(player, player.role)

    async def on_new_game(self, data: Dict[str, Any]) -> None:
        logger.info("New game, dropping all squad tags and warnings")
        self.warn_scheduler.stop_all()
        self._states.clear()
        self.registry.clear_all()
        if self.store:
            await self.store.clear()

    async def on_squad_created(self, data: Dict[str, Any]) -> None:
        squad = data.get("squad")
        if squad is None and data.get("player"):
            squad = data["player"].squad
        if squad is None:
            return

        self.registry.derive_from_name(squad)
        await self.check_all_players_in_squad(squad)

    async def on_chat_command(self, data: Dict[str, Any]) -> None:
        player = data.get("player")
        if player:
            await self.command_processing(player, extract_command_args(data.get("message", "")))

    # --- Compliance ---

    def state_of(self, player_id: str) -> ComplianceState:
        return self._states.get(player_id, ComplianceState.UNMONITORED)

    @property
    def tracked_player_ids(self) -> List[str]:
        return list(self._states)

    def _set_state(self, player_id: str, state: ComplianceState) -> None:
        if state == ComplianceState.UNMONITORED:
            self._states.pop(player_id, None)
        else:
            self._states[player_id] = state

    def is_need_to_check_player(self, player: Player) -> bool:
        if not player.squad:
            logger.debug(f"Player {player.player_id} has no squad")
            return False

        if player.squad.locked:
            logger.debug(f"Player {player.player_id} squad {player.squad.squad_id} is locked")
            return False

        if player.is_leader:
            logger.debug(f"Player {player.player_id} is leader of {player.squad.squad_id} squad")
            return False

        return True

    def evaluate(self, squad: Squad, role: str) -> RoleVerdict:
        return evaluate_role(self.registry.tags_for(squad).tags(), role, self.catalog)

    async def check_role(self, player: Player, role: str) -> ComplianceState:
        if not self.is_need_to_check_player(player):
            self._stop(player.player_id, ComplianceState.UNMONITORED)
            return ComplianceState.UNMONITORED

        squad = player.squad
        verdict = self.evaluate(squad, role)
        tokens = self.registry.tags_for(squad).tokens()

        if verdict.allowed:
            logger.debug(
                f"The role {role} not forbidden for player {player.player_id}, due tags {tokens}, "
                f"squad {squad.identity}, squad name {squad.squad_name}"
            )
            self._stop(player.player_id, ComplianceState.COMPLIANT)
            return ComplianceState.COMPLIANT

        logger.info(
            f"The role {role} forbidden for player {player.player_id} due tags {tokens}, "
            f"squad {squad.identity}, squad name {squad.squad_name}"
        )
        self._set_state(player.player_id, ComplianceState.VIOLATING)
        await self.run_warns(player.player_id, violation_message(verdict))
        return self.state_of(player.player_id)

    async def check_player_by_id(self, player_id: str) -> ComplianceState:
        player = await self.server.get_player_by_id(player_id)
        if player is None:
            self._stop(player_id, ComplianceState.UNMONITORED)
            return ComplianceState.UNMONITORED
        return await self.check_role(player, player.role)

    async def check_all_players_in_squad(self, squad: Squad) -> None:
        players = [
            player
            for player in self.server.players
            if player.team_id == squad.team_id and player.squad_id == squad.squad_id
        ]
        await asyncio.gather(*(self.check_role(player, player.role) for player in players))

    async def run_warns(self, player_id: str, message: str) -> None:
        self.warn_scheduler.stop(player_id)

        player = await self.server.get_player_by_id(player_id)
        if not player or not self.is_need_to_check_player(player):
            self._stop(player_id, ComplianceState.UNMONITORED)
            return

        # start() cancels whatever got armed while the lookup was suspended
        self.warn_scheduler.start(player_id, message, self._is_still_violating)
        self.deliver(player_id, [message])

    async def _is_still_violating(self, player_id: str) -> bool:
        player = await self.server.get_player_by_id(player_id)
        if not player or not self.is_need_to_check_player(player):
            self._set_state(player_id, ComplianceState.UNMONITORED)
            return False

        if self.evaluate(player.squad, player.role).allowed:
            self._set_state(player_id, ComplianceState.COMPLIANT)
            return False

        return True

    def _stop(self, player_id: str, state: ComplianceState) -> None:
        self.warn_scheduler.stop(player_id)
        self._set_state(player_id, state)

    # --- Chat command ---

    async def command_processing(self, player: Player, args: List[str]) -> None:
        if not player.squad:
            logger.debug(f"The player {player.player_id} call command {args}, but has no squad")
            return

        logger.debug(f"The player {player.player_id} call command {args}")

        if player.is_leader:
            await self.command_leader_processing(player, args)
        else:
            self.command_soldier_processing(player, args)

    async def command_leader_processing(self, player: Player, args: List[str]) -> None:
        command = args[0] if args else ""

        if command and command[0] in (TagType.POSITIVE.value, TagType.NEGATIVE.value):
            await self.set_tags_to_squad(player.player_id, player.squad, args)
        elif command == "clear":
            await self.clear_squad_tags(player.player_id, player.squad)
        elif command == "help":
            self.deliver(player.player_id, self.full_help_messages)
        elif command != "":
            self.deliver(player.player_id, self.short_help_messages)
        else:
            self.show_squad_tags(player.player_id, player.squad)

    def command_soldier_processing(self, player: Player, args: List[str]) -> None:
        command = args[0] if args else ""

        if command == "help":
            self.deliver(player.player_id, self.full_help_messages)
        else:
            self.show_squad_tags(player.player_id, player.squad)

    async def set_tags_to_squad(self, player_id: str, squad: Squad, tokens: List[str]) -> None:
        """Replaces the squad's tags, then persists and re-checks before answering."""
        tokens = [token for token in tokens if token]
        added_tokens = self.registry.replace(squad, tokens)

        if not added_tokens:
            self.deliver(
                player_id,
                [
                    f"Tags not found: {', '.join(tokens)}",
                    f"!{self.main_command} +TAG -TAG - set tags, + or - is required",
                ],
            )
            return

        await self._apply_squad_tags(squad)
        self.deliver(player_id, [f"Tags set: {', '.join(added_tokens)}"])

    async def clear_squad_tags(self, player_id: str, squad: Squad) -> None:
        self.registry.clear(squad)
        await self._apply_squad_tags(squad)
        self.deliver(player_id, ["Tags cleared"])

    async def _apply_squad_tags(self, squad: Squad) -> None:
        if self.store:
            await self.store.save(squad.identity.key, self.registry.tags_for(squad).tokens())
        await self.check_all_players_in_squad(squad)

    def show_squad_tags(self, player_id: str, squad: Squad) -> None:
        typed_tags = self.registry.tags_for(squad).tags()

        if not typed_tags:
            self.deliver(player_id, ["All roles are allowed in this squad"])
            return

        messages = []
        for typed_tag in typed_tags:
            tag_setting = self.catalog.get(typed_tag.tag)
            if tag_setting is None:
                logger.warning(f"Tag {typed_tag.tag} not found in tag map")
                continue

            effect = "allowed" if typed_tag.is_positive else "forbidden"
            messages.append(f"{typed_tag.tag} - {effect} '{tag_setting.readable_name}'")

        self.deliver(player_id, messages)

    # --- Delivery ---

    def deliver(self, player_id: str, messages: List[str]) -> asyncio.Task:
        """Sends messages in the background so slow delivery never holds up events."""
        task = asyncio.create_task(self.warns(player_id, messages), name=f"deliver-{player_id}")
        self._delivery_tasks.add(task)
        task.add_done_callback(self._on_delivery_done)
        return task

    def _on_delivery_done(self, task: asyncio.Task) -> None:
        self._delivery_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Failed to deliver message ({task.get_name()}): {error}")

    @property
    def pending_deliveries(self) -> int:
        return len(self._delivery_tasks)

    async def flush_deliveries(self) -> None:
        """Waits until every queued message has been sent or has failed."""
        while self._delivery_tasks:
            await asyncio.gather(*list(self._delivery_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stops warnings and drops unsent answers."""
        self.warn_scheduler.stop_all()
        tasks = list(self._delivery_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Squad role ban has been closed")

    async def warns(self, player_id: str, messages: List[str]) -> None:
        for i, message in enumerate(messages):
            await self.warn(player_id, message)

            if i != len(messages) - 1:
                await asyncio.sleep(self.help_message_interval)

    async def warn(self, player_id: str, message: str) -> None:
        await self.notify(player_id, message)
