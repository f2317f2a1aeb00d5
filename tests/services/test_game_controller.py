# tests/services/test_game_controller.py
import asyncio
import pytest
from unittest.mock import AsyncMock

from app.core.config import settings
from app.core.errors import (
    GameFlowError,
    InvalidTransitionError,
    InvalidTurnError,
    LobbyStartError,
    ServiceUnreachableError,
    TurnInProgressError,
)
from app.models.enums import AddedBy, GameMode, GameState, GameStatus
from app.models.game import GameSession, ImageResult, MemoryItem, OnlineSeat, Player
from app.services.turn_resolver import SOLO_FINISHED_REASON, TIME_UP_REASON

def online_session(players=2, current_player_id="p1", game_status=GameStatus.LOBBY, **kwargs) -> GameSession:
    return GameSession(
        base_prompt="Tokyo",
        game_mode=GameMode.ONLINE,
        game_code="ABCD",
        players=[Player(id=f"p{i + 1}", name=f"Name {i + 1}") for i in range(players)],
        host_id="p1",
        current_player_id=current_player_id,
        game_status=game_status,
        current_image="img-0",
        image_history=["img-0"],
        **kwargs,
    )

# --- Local games ---

@pytest.mark.asyncio
async def test_start_local_two_player_game(controller, ai_service):
    session = await controller.start_local("Paris", GameMode.TWO_PLAYER)

    assert controller.state == GameState.GAME
    assert session.items == []
    assert session.image_history == ["img-0"]
    assert session.turn_ends_at is not None
    assert controller.tasks.is_running("timer")
    ai_service.generate_initial_image.assert_awaited_once_with("Paris")

@pytest.mark.asyncio
async def test_start_local_single_player_uses_default_persona(controller):
    session = await controller.start_local("Paris", GameMode.SINGLE_PLAYER)
    assert session.ai_persona == settings.DEFAULT_AI_PERSONA

@pytest.mark.asyncio
async def test_solo_mode_has_no_deadline_or_timer(controller):
    session = await controller.start_local("Rome", GameMode.SOLO_MODE)
    assert session.turn_ends_at is None
    assert not controller.tasks.is_running("timer")
    assert controller.to_view().seconds_left is None

@pytest.mark.asyncio
async def test_start_failure_is_recorded_and_state_unchanged(controller, ai_service):
    ai_service.generate_initial_image = AsyncMock(side_effect=ServiceUnreachableError("down"))
    with pytest.raises(ServiceUnreachableError):
        await controller.start_local("Paris", GameMode.TWO_PLAYER)

    assert controller.state == GameState.START
    assert controller.error == "down"
    assert controller.is_busy is False
    controller.dismiss_error()
    assert controller.error is None

@pytest.mark.asyncio
async def test_turn_outside_game_is_rejected(controller):
    with pytest.raises(InvalidTransitionError):
        await controller.submit_turn("", "a hat")

@pytest.mark.asyncio
async def test_successful_turns_rotate_players_and_emit_events(controller):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    await controller.submit_turn("", "a hat")
    await controller.submit_turn("a hat", "a dog")

    assert [item.text for item in controller.session.items] == ["a hat", "a dog"]
    assert controller.session.current_player == AddedBy.PLAYER_1
    event_types = [event.type for event in controller.events.drain()]
    assert event_types == ["turn_success", "memory_correct", "turn_success"]

@pytest.mark.asyncio
async def test_second_submission_while_busy_is_rejected(controller, ai_service):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    release = asyncio.Event()

    async def slow_edit(image, mime_type, item):
        await release.wait()
        return ImageResult(base64_image=f"{image}+{item}", mime_type=mime_type)

    ai_service.edit_image = AsyncMock(side_effect=slow_edit)
    first = asyncio.create_task(controller.submit_turn("", "a hat"))
    await asyncio.sleep(0)
    assert controller.is_busy is True

    with pytest.raises(TurnInProgressError):
        await controller.submit_turn("", "a dog")

    release.set()
    await first
    assert [item.text for item in controller.session.items] == ["a hat"]
    assert controller.is_busy is False

@pytest.mark.asyncio
async def test_failed_memory_ends_game_and_saves_trip(controller, trip_saver):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    await controller.submit_turn("", "a hat")
    await controller.submit_turn("", "a dog") # Player 2 forgot "a hat"

    assert controller.state == GameState.GAME_OVER
    assert controller.game_over_reason == "Player 2's memory failed!"
    assert not controller.tasks.is_running("timer")

    summary_task = controller.summary_task
    assert summary_task is not None
    await summary_task

    assert controller.trip_summary == "What a trip!"
    assert controller.is_summary_loading is False
    trip_saver.assert_called_once()
    saved = trip_saver.call_args.args[0]
    assert saved.location == "Paris"
    assert saved.items == ["a hat"]
    assert saved.summary == "What a trip!"

@pytest.mark.asyncio
async def test_summary_failure_uses_fallback(controller, ai_service, trip_saver):
    ai_service.get_trip_summary = AsyncMock(side_effect=ServiceUnreachableError("down"))
    await controller.start_local("Paris", GameMode.SOLO_MODE)
    await controller.submit_turn("", "a hat")
    controller.finish_trip()

    await controller.summary_task
    assert controller.game_over_reason == SOLO_FINISHED_REASON
    assert controller.trip_summary == settings.TRIP_SUMMARY_FALLBACK
    assert trip_saver.call_args.args[0].summary == settings.TRIP_SUMMARY_FALLBACK

@pytest.mark.asyncio
async def test_empty_trip_is_not_saved(controller, trip_saver):
    await controller.start_local("Paris", GameMode.SOLO_MODE)
    controller.finish_trip()
    await controller.summary_task
    trip_saver.assert_not_called()

@pytest.mark.asyncio
async def test_finish_is_only_for_solo_trips(controller):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    with pytest.raises(GameFlowError):
        controller.finish_trip()

@pytest.mark.asyncio
async def test_timeout_ends_timed_game(controller):
    await controller.start_local("Paris", GameMode.THREE_PLAYER)
    controller.end_turn_on_timeout()
    assert controller.state == GameState.GAME_OVER
    assert controller.game_over_reason == TIME_UP_REASON
    assert "game_over" in [event.type for event in controller.events.peek()]

@pytest.mark.asyncio
async def test_ai_failure_keeps_player_item_until_retry(controller, ai_service):
    await controller.start_local("Paris", GameMode.SINGLE_PLAYER)
    ai_service.get_ai_idea = AsyncMock(side_effect=ServiceUnreachableError("AI is asleep"))

    with pytest.raises(ServiceUnreachableError):
        await controller.submit_turn("", "a hat")

    assert [item.text for item in controller.session.items] == ["a hat"]
    assert controller.session.awaiting_ai_turn is True
    assert controller.error == "AI is asleep"
    assert not controller.tasks.is_running("timer")
    with pytest.raises(InvalidTurnError):
        await controller.submit_turn("a hat", "a dog")

    ai_service.get_ai_idea = AsyncMock(return_value="a kite")
    await controller.retry_ai_turn()

    assert [item.text for item in controller.session.items] == ["a hat", "a kite"]
    assert controller.session.awaiting_ai_turn is False
    assert controller.session.turn_ends_at is not None
    assert controller.tasks.is_running("timer")

@pytest.mark.asyncio
async def test_hint_once_per_turn(controller):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    with pytest.raises(InvalidTurnError):
        controller.request_hint("")

    await controller.submit_turn("", "a hat")
    assert controller.request_hint("") == "The next item starts with: A"
    assert controller.to_view().hint == "The next item starts with: A"
    with pytest.raises(InvalidTurnError):
        controller.request_hint("")

    await controller.submit_turn("a hat", "zebra")
    assert controller.to_view().hint is None
    assert controller.request_hint("a hat") == "The next item starts with: Z"

@pytest.mark.asyncio
async def test_reset_is_idempotent(controller):
    fresh_view = controller.to_view().model_dump()
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    await controller.submit_turn("", "a hat")
    controller.end_turn_on_timeout()

    controller.reset()
    assert controller.to_view().model_dump() == fresh_view
    controller.reset()
    assert controller.to_view().model_dump() == fresh_view
    assert controller.tasks.get("timer") is None
    assert controller.tasks.get("summary") is None

@pytest.mark.asyncio
async def test_reset_mid_game_stops_timer(controller):
    fresh_view = controller.to_view().model_dump()
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    await controller.submit_turn("", "a hat")
    assert controller.tasks.is_running("timer")

    controller.reset()
    assert controller.to_view().model_dump() == fresh_view
    assert controller.tasks.get("timer") is None
    assert controller.events.peek() == []

@pytest.mark.asyncio
async def test_reset_from_lobby_stops_polling(controller, ai_service):
    fresh_view = controller.to_view().model_dump()
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session()))
    await controller.create_online("Tokyo", "Ana")
    assert controller.tasks.is_running("poll")

    controller.reset()
    assert controller.to_view().model_dump() == fresh_view
    assert controller.tasks.get("poll") is None
    assert controller.should_poll() is False

@pytest.mark.asyncio
async def test_late_result_after_reset_is_discarded(controller, ai_service):
    release = asyncio.Event()

    async def slow_image(destination):
        await release.wait()
        return ImageResult(base64_image="late", mime_type="image/png")

    ai_service.generate_initial_image = AsyncMock(side_effect=slow_image)
    pending = asyncio.create_task(controller.start_local("Paris", GameMode.TWO_PLAYER))
    await asyncio.sleep(0)
    controller.reset()
    release.set()

    assert await pending is None
    assert controller.state == GameState.START
    assert controller.session is None

@pytest.mark.asyncio
async def test_gallery_only_from_start(controller):
    controller.show_gallery()
    assert controller.state == GameState.GALLERY
    with pytest.raises(InvalidTransitionError):
        await controller.start_local("Paris", GameMode.TWO_PLAYER)
    controller.reset()
    assert controller.state == GameState.START

@pytest.mark.asyncio
async def test_sound_toggle_is_per_controller(controller):
    await controller.start_local("Paris", GameMode.TWO_PLAYER)
    controller.set_sound_enabled(False)
    await controller.submit_turn("", "a hat")
    event = controller.events.drain()[-1]
    assert event.type == "turn_success"
    assert event.sound is None
    assert controller.to_view().sound_enabled is False

# --- Online games ---

@pytest.mark.asyncio
async def test_create_online_enters_lobby_and_polls(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session(players=1)))
    await controller.create_online("Tokyo", "")

    assert controller.state == GameState.LOBBY
    assert controller.is_host is True
    assert controller.can_start_game is False
    assert controller.tasks.is_running("poll")
    player_name = ai_service.create_online_game.await_args.args[1]
    assert player_name.startswith("Player ")
    assert 100 <= int(player_name.split(" ")[1]) <= 999

@pytest.mark.asyncio
async def test_lobby_start_requires_host_and_two_players(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session(players=1)))
    await controller.create_online("Tokyo", "Ana")

    with pytest.raises(LobbyStartError):
        await controller.start_online_game()
    ai_service.start_game.assert_not_awaited()

@pytest.mark.asyncio
async def test_lobby_start_moves_to_game_once_authority_is_active(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session()))
    ai_service.get_game_state = AsyncMock(return_value=(online_session(game_status=GameStatus.ACTIVE), GameStatus.ACTIVE))
    await controller.create_online("Tokyo", "Ana")

    await controller.start_online_game()

    ai_service.start_game.assert_awaited_once_with("ABCD", "p1")
    assert controller.state == GameState.GAME
    assert controller.is_my_turn is True
    assert controller.tasks.key_for("poll") == ("ABCD", GameState.GAME)

@pytest.mark.asyncio
async def test_join_upper_cases_code_and_lands_in_running_game(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="WXYZ", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, game_code="WXYZ"),
    ))
    await controller.join_online(" wxyz ", "Ben")

    assert ai_service.join_online_game.await_args.args == ("WXYZ", "Ben")
    assert controller.state == GameState.GAME
    assert controller.is_host is False
    assert controller.is_my_turn is False

@pytest.mark.asyncio
async def test_online_turn_is_gated_locally(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, current_player_id="p1"),
    ))
    await controller.join_online("ABCD", "Ben")

    with pytest.raises(InvalidTurnError):
        await controller.submit_turn("", "a fox")
    ai_service.submit_turn.assert_not_awaited()

@pytest.mark.asyncio
async def test_online_turn_is_forwarded_to_authority(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, current_player_id="p2"),
    ))
    await controller.join_online("ABCD", "Ben")
    await controller.submit_turn("a hat\n a dog", "a fox")

    ai_service.submit_turn.assert_awaited_once_with("ABCD", "p2", ["a hat", "a dog"], "a fox")
    assert controller.session.items == [] # The next poll brings the resolved state

@pytest.mark.asyncio
async def test_finished_snapshot_ends_game_and_stops_polling(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session()))
    await controller.create_online("Tokyo", "Ana")

    finished = online_session(game_status=GameStatus.FINISHED, game_over_reason="Name 2's memory failed!")
    assert controller.apply_remote_snapshot(finished, GameStatus.FINISHED) is False

    assert controller.state == GameState.GAME_OVER
    assert controller.game_over_reason == "Name 2's memory failed!"
    assert controller.should_poll() is False
    assert controller.tasks.get("poll") is None

@pytest.mark.asyncio
async def test_connection_loss_persists_until_reset(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session()))
    await controller.create_online("Tokyo", "Ana")

    controller.on_connection_lost(ServiceUnreachableError("down"))
    controller.dismiss_error()

    view = controller.to_view()
    assert view.connection_lost is True
    assert view.error is not None
    assert controller.tasks.get("poll") is None
    assert [event.type for event in controller.events.peek()] == ["connection_lost"]

    controller.reset()
    assert controller.to_view().connection_lost is False

@pytest.mark.asyncio
async def test_lobby_start_rejects_more_than_max_players(controller, ai_service, mocker):
    mocker.patch.object(settings, "MAX_ONLINE_PLAYERS", 3)
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(game_code="ABCD", player_id="p1", session=online_session(players=4)))
    await controller.create_online("Tokyo", "Ana")

    assert controller.can_start_game is False
    with pytest.raises(LobbyStartError):
        await controller.start_online_game()
    ai_service.start_game.assert_not_awaited()

@pytest.mark.asyncio
async def test_full_lobby_can_start(controller, ai_service):
    ai_service.create_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p1", session=online_session(players=settings.MAX_ONLINE_PLAYERS),
    ))
    await controller.create_online("Tokyo", "Ana")
    assert controller.can_start_game is True

@pytest.mark.asyncio
async def test_online_turn_waits_for_authority_before_next_submit(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, current_player_id="p2"),
    ))
    await controller.join_online("ABCD", "Ben")
    await controller.submit_turn("", "a fox")

    assert controller.to_view().is_busy is True
    with pytest.raises(TurnInProgressError):
        await controller.submit_turn("", "a fox")
    ai_service.submit_turn.assert_awaited_once()

    # A snapshot of the same turn keeps the guard
    same_turn = online_session(game_status=GameStatus.ACTIVE, current_player_id="p2")
    assert controller.apply_remote_snapshot(same_turn, GameStatus.ACTIVE) is True
    with pytest.raises(TurnInProgressError):
        await controller.submit_turn("", "a fox")

@pytest.mark.asyncio
async def test_online_turn_guard_clears_when_turn_moves_on(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, current_player_id="p2"),
    ))
    await controller.join_online("ABCD", "Ben")
    await controller.submit_turn("", "a fox")

    # Everyone else took a turn and it is p2's again
    moved_on = online_session(
        game_status=GameStatus.ACTIVE,
        current_player_id="p2",
        items=[MemoryItem(text="a fox", added_by=AddedBy.PLAYER_2), MemoryItem(text="a kite", added_by=AddedBy.PLAYER_1)],
    )
    controller.apply_remote_snapshot(moved_on, GameStatus.ACTIVE)

    assert controller.to_view().is_busy is False
    await controller.submit_turn("a fox\na kite", "a drum")
    assert ai_service.submit_turn.await_count == 2
    assert ai_service.submit_turn.await_args.args == ("ABCD", "p2", ["a fox", "a kite"], "a drum")

@pytest.mark.asyncio
async def test_rejected_online_turn_can_be_sent_again(controller, ai_service):
    ai_service.join_online_game = AsyncMock(return_value=OnlineSeat(
        game_code="ABCD", player_id="p2", session=online_session(game_status=GameStatus.ACTIVE, current_player_id="p2"),
    ))
    ai_service.submit_turn = AsyncMock(side_effect=[ServiceUnreachableError("down"), None])
    await controller.join_online("ABCD", "Ben")

    with pytest.raises(ServiceUnreachableError):
        await controller.submit_turn("", "a fox")
    await controller.submit_turn("", "a fox")
    assert ai_service.submit_turn.await_count == 2
