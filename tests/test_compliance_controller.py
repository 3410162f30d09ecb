"""Tests for role checks, warning lifecycle and match restarts."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from squad_role_ban.models.enums import ComplianceState, ServerEvent
from squad_role_ban.models.roster import Squad


async def stop_timers(controller):
    controller.warn_scheduler.stop_all()
    await asyncio.sleep(0)


class TestEligibility:
    @pytest.mark.asyncio
    async def test_leader_is_unmonitored(self, controller, server):
        controller.registry.replace(server.squads[0], ["-officer"])
        leader = await server.get_player_by_id("100")

        state = await controller.check_role(leader, leader.role)

        assert state == ComplianceState.UNMONITORED
        assert not controller.warn_scheduler.is_active("100")

    @pytest.mark.asyncio
    async def test_player_without_squad_is_unmonitored(self, controller, server, notify):
        server.update_player("200", squad_id=None)
        player = await server.get_player_by_id("200")

        assert await controller.check_role(player, "Rifleman") == ComplianceState.UNMONITORED
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_locked_squad_is_unmonitored(self, controller, server, squad):
        server.upsert_squad(squad.model_copy(update={"locked": True}))
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")

        assert await controller.check_role(player, "Rifleman") == ComplianceState.UNMONITORED

    @pytest.mark.asyncio
    async def test_unknown_player_is_unmonitored(self, controller):
        assert await controller.check_player_by_id("999") == ComplianceState.UNMONITORED


class TestCheckRole:
    @pytest.mark.asyncio
    async def test_allowed_role_is_compliant(self, controller, server, squad, notify):
        controller.registry.replace(squad, ["+support"])
        player = await server.get_player_by_id("200")

        assert await controller.check_role(player, "Rifleman") == ComplianceState.COMPLIANT
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forbidden_role_warns_immediately_and_repeats(
        self, controller, server, squad, notify, wait_until
    ):
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")

        state = await controller.check_role(player, "Rifleman")

        assert state == ComplianceState.VIOLATING
        await controller.flush_deliveries()
        player_id, message = notify.await_args_list[0].args
        assert player_id == "200"
        assert "+medic" in message
        assert "'Medics'" in message

        await wait_until(lambda: notify.await_count >= 3)
        assert controller.warn_scheduler.active_player_ids == ["200"]
        await stop_timers(controller)

    @pytest.mark.asyncio
    async def test_repeated_checks_keep_one_timer(self, controller, server, squad):
        controller.registry.replace(squad, ["-support"])
        player = await server.get_player_by_id("200")

        await asyncio.gather(*(controller.check_role(player, "Rifleman") for _ in range(3)))

        assert controller.warn_scheduler.active_player_ids == ["200"]
        await stop_timers(controller)

    @pytest.mark.asyncio
    async def test_role_change_event_stops_warnings(self, controller, server, squad, notify):
        await controller.mount()
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        await controller.check_role(player, "Rifleman")

        player = server.update_player("200", role="Medic")
        await server.emit(
            ServerEvent.PLAYER_ROLE_CHANGE.value, {"player": player, "new_role": "Medic"}
        )

        assert controller.state_of("200") == ComplianceState.COMPLIANT
        assert not controller.warn_scheduler.is_active("200")

    @pytest.mark.asyncio
    async def test_compliant_role_between_ticks_ends_warnings(
        self, controller, server, squad, notify, wait_until
    ):
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        await controller.check_role(player, "Rifleman")

        # Roster changes without any event reaching the controller
        server.update_player("200", role="Medic")
        await wait_until(lambda: not controller.warn_scheduler.is_active("200"))
        calls = notify.await_count
        await asyncio.sleep(0.1)

        assert notify.await_count == calls
        assert controller.state_of("200") == ComplianceState.COMPLIANT

    @pytest.mark.asyncio
    async def test_becoming_leader_between_ticks_ends_warnings(
        self, controller, server, squad, wait_until
    ):
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        await controller.check_role(player, "Rifleman")

        server.update_player("200", is_leader=True)
        await wait_until(lambda: not controller.warn_scheduler.is_active("200"))

        assert controller.state_of("200") == ComplianceState.UNMONITORED

    @pytest.mark.asyncio
    async def test_player_left_before_arming_gets_no_timer(self, controller, server, squad, notify):
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        server.remove_player("200")

        state = await controller.check_role(player, "Rifleman")

        assert state == ComplianceState.UNMONITORED
        assert not controller.warn_scheduler.is_active("200")
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_delivery_failure_keeps_timer(self, controller, server, squad, notify):
        notify.side_effect = RuntimeError("bridge down")
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")

        state = await controller.check_role(player, "Rifleman")
        await controller.flush_deliveries()

        assert state == ComplianceState.VIOLATING
        notify.assert_awaited()
        assert controller.warn_scheduler.is_active("200")
        await controller.close()

    @pytest.mark.asyncio
    async def test_unmonitored_players_are_not_tracked(self, controller, server, squad):
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        await controller.check_role(player, "Rifleman")
        assert controller.tracked_player_ids == ["200"]

        server.update_player("200", squad_id=None)
        await controller.check_player_by_id("200")

        assert controller.tracked_player_ids == []
        assert controller.state_of("200") == ComplianceState.UNMONITORED
        await controller.close()


class TestServerEvents:
    @pytest.mark.asyncio
    async def test_mount_derives_tags_from_existing_squads(self, server, catalog, notify):
        from squad_role_ban.enforcement.controller import ComplianceController

        server.upsert_squad(
            Squad(squad_id="2", team_id="1", squad_name="Tanks -med", creator_id="300")
        )
        controller = ComplianceController(server, notify, catalog, warn_interval=1)

        await controller.mount()

        assert controller.registry.tags_for(server.get_squad("1", "2")).tokens() == ["-med"]

    @pytest.mark.asyncio
    async def test_mount_restores_persisted_tags_over_name(self, server, catalog, notify):
        from squad_role_ban.enforcement.controller import ComplianceController

        squad = Squad(squad_id="2", team_id="1", squad_name="Tanks -med", creator_id="300")
        server.upsert_squad(squad)
        store = AsyncMock()
        store.load_all.return_value = {"2_1_300": ["+armor"]}
        controller = ComplianceController(server, notify, catalog, warn_interval=1, store=store)

        await controller.mount()

        assert controller.registry.tags_for(squad).tokens() == ["+armor"]

    @pytest.mark.asyncio
    async def test_mount_falls_back_to_name_when_persisted_tags_are_unknown(
        self, server, catalog, notify
    ):
        from squad_role_ban.enforcement.controller import ComplianceController

        squad = Squad(squad_id="2", team_id="1", squad_name="Tanks -med", creator_id="300")
        server.upsert_squad(squad)
        store = AsyncMock()
        store.load_all.return_value = {"2_1_300": ["+removedtag"]}
        controller = ComplianceController(server, notify, catalog, warn_interval=1, store=store)

        await controller.mount()

        assert controller.registry.tags_for(squad).tokens() == ["-med"]

    @pytest.mark.asyncio
    async def test_squad_created_derives_tags_and_checks_members(
        self, controller, server, notify
    ):
        await controller.mount()
        squad = Squad(squad_id="1", team_id="1", squad_name="Medics +medic", creator_id="100")
        server.upsert_squad(squad)

        await server.emit(ServerEvent.SQUAD_CREATED.value, {"squad": squad})

        assert controller.registry.tags_for(squad).tokens() == ["+medic"]
        assert controller.state_of("200") == ComplianceState.VIOLATING
        assert controller.state_of("100") == ComplianceState.UNMONITORED
        await stop_timers(controller)

    @pytest.mark.asyncio
    async def test_leadership_loss_triggers_check(self, controller, server, squad):
        await controller.mount()
        controller.registry.replace(squad, ["-officer"])

        leader = server.update_player("100", is_leader=False)
        await server.emit(ServerEvent.PLAYER_NOW_IS_NOT_LEADER.value, {"player": leader})

        assert controller.state_of("100") == ComplianceState.VIOLATING
        await stop_timers(controller)

    @pytest.mark.asyncio
    async def test_new_game_clears_tags_and_timers(self, controller, server, squad, notify):
        await controller.mount()
        controller.registry.replace(squad, ["+medic"])
        player = await server.get_player_by_id("200")
        await controller.check_role(player, "Rifleman")

        await server.emit(ServerEvent.NEW_GAME.value, {})

        assert controller.warn_scheduler.active_player_ids == []
        assert controller.state_of("200") == ComplianceState.UNMONITORED
        assert len(controller.registry) == 0
        assert controller.tracked_player_ids == []

        # The new match starts without the old squads
        server.remove_squad("1", "1")
        assert await controller.check_player_by_id("200") == ComplianceState.UNMONITORED

    @pytest.mark.asyncio
    async def test_new_game_clears_persisted_tags(self, server, catalog, notify):
        from squad_role_ban.enforcement.controller import ComplianceController

        store = AsyncMock()
        store.load_all.return_value = {}
        controller = ComplianceController(server, notify, catalog, warn_interval=1, store=store)
        await controller.mount()

        await server.emit(ServerEvent.NEW_GAME.value, {})

        store.clear.assert_awaited_once()
