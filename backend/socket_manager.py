from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError
from typing import Callable, Dict, List, Optional, Type
import json
import time
import uuid
import asyncio
import logging

import config
from errors import BadRequest, Forbidden, GameError, Ignored, InvalidState, NotFound
from identity import verify_token
from models import AnswerPayload, CreateRoomPayload, JoinPayload, Quiz, RoomPayload
from rooms import QUESTION_ACTIVE, Room, RoomRegistry
from scoring import make_leaderboard, score_answer
from timers import TaskScheduler, now_ms
from transport import ConnectionHub

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    msg = errors[0].get("msg", "Invalid request")
    return msg.removeprefix("Value error, ")


def _parse(model: Type[BaseModel], data) -> BaseModel:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BadRequest(_validation_message(exc))


class SessionCoordinator:
    """Handles inbound events for every room and publishes the results.

    One coordinator serves the whole process. Each room's mutations run under
    that room's lock, so a timer firing and a host action never interleave.
    """

    def __init__(self, registry: Optional[RoomRegistry] = None,
                 hub: Optional[ConnectionHub] = None,
                 scheduler: Optional[TaskScheduler] = None,
                 clock: Callable[[], int] = now_ms):
        self.registry = registry if registry is not None else RoomRegistry()
        self.hub = hub if hub is not None else ConnectionHub()
        self.scheduler = scheduler if scheduler is not None else TaskScheduler()
        self.clock = clock
        self.allowed_origins: List[str] = []
        self._cleanup_task: Optional[asyncio.Task] = None
        # WS rate limiting: connection_id -> list of timestamps
        self._msg_timestamps: Dict[str, list] = {}
        self._handlers = {
            "host:create_room": self.create_room,
            "player:join": self.join,
            "host:next_question": self.next_question,
            "player:answer": self.answer,
        }

    # ------------------------------------------------------------------
    # Background maintenance
    # ------------------------------------------------------------------

    def start_cleanup_loop(self):
        """Start the background room cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_rooms())

    def stop_cleanup_loop(self):
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_expired_rooms(self):
        """Periodically close rooms that have been idle past ROOM_TTL_SECONDS."""
        while True:
            try:
                await asyncio.sleep(config.ROOM_CLEANUP_INTERVAL)
                await self.close_expired_rooms()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in room cleanup loop")

    async def close_expired_rooms(self) -> List[str]:
        expired = [room for room in list(self.registry.rooms.values()) if room.is_expired()]
        for room in expired:
            async with room.lock:
                await self._close_room(room, notify=True)
            logger.info("Cleaned up expired room %s", room.code)
        return [room.code for room in expired]

    # ------------------------------------------------------------------
    # Transport loop
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.hub.register(connection_id, websocket)
        logger.info("Connection %s opened", connection_id)

        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data.encode()) > config.MAX_WS_MESSAGE_SIZE:
                    await self.hub.send(connection_id, "error", {"message": "Message too large"})
                    continue

                # Per-connection rate limiting
                now = time.time()
                timestamps = self._msg_timestamps.setdefault(connection_id, [])
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await self.hub.send(connection_id, "error", {"message": "Too many messages"})
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from connection %s: %s", connection_id, data[:100])
                    await self.hub.send(connection_id, "error", {"message": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    await self.hub.send(connection_id, "error", {"message": "Invalid message format"})
                    continue

                await self.handle_event(connection_id, message)
        except WebSocketDisconnect:
            logger.info("Connection %s closed", connection_id)
        except Exception:
            logger.exception("WebSocket error for connection %s", connection_id)
        finally:
            self.hub.unregister(connection_id)
            await self.disconnect(connection_id)

    async def handle_event(self, connection_id: str, message: dict):
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            await self.hub.send(connection_id, "error", {"message": "Unknown event"})
            return
        try:
            await handler(connection_id, message)
        except Ignored as exc:
            logger.debug("Ignored %s from %s: %s", msg_type, connection_id, exc.message)
        except GameError as exc:
            logger.warning("Rejected %s from %s: %s", msg_type, connection_id, exc.message)
            await self.hub.send(connection_id, "error", {"message": exc.message})
        except Exception:
            logger.exception("Error handling %s from %s", msg_type, connection_id)
            await self.hub.send(connection_id, "error", {"message": "Internal error"})

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    async def create_room(self, connection_id: str, data: dict) -> Room:
        payload = _parse(CreateRoomPayload, data)
        identity = verify_token(payload.token)
        if identity.role != "host":
            raise Forbidden("Unauthorized: Only hosts can create rooms.")
        quiz = _parse(Quiz, payload.quiz)

        room = await self.registry.create(quiz, identity.user_id, connection_id)
        self.hub.join(room.code, connection_id)
        await self.hub.send(connection_id, "host:room_created", {"roomCode": room.code})
        logger.info("Room created by %s: %s (%d questions)", identity.user_id, room.code, room.total_questions)
        return room

    async def next_question(self, connection_id: str, data: dict):
        try:
            payload = RoomPayload.model_validate(data)
        except ValidationError:
            raise Ignored("Malformed next_question")
        room = self.registry.find(payload.room_code)
        if room is None or room.host_connection_id != connection_id:
            raise Ignored("Not the host of this room")

        async with room.lock:
            if self.registry.find(room.code) is not room:
                raise Ignored("Room closed")
            room.touch()
            question = room.advance(self.clock())

            if question is None:
                leaderboard = make_leaderboard(room.players.values())
                await self.hub.broadcast(room.code, "game:over", {"leaderboard": leaderboard})
                logger.info("Game over in room %s", room.code)
                if config.DELETE_ROOM_ON_GAME_OVER:
                    await self._close_room(room, notify=False)
                return

            index = room.current_question_index
            await self.hub.broadcast(room.code, "question:start", {
                "index": index,
                "text": question.text,
                "choices": question.choices,
                "endsAt": room.question_deadline,
                "hasMultipleAnswers": question.has_multiple_answers,
            })
            delay = question.time_limit + config.QUESTION_END_GRACE_MS / 1000
            room.timer_task = self.scheduler.call_later(delay, self.end_question, room.code, index)
            logger.info("Room %s question %d/%d started", room.code, index + 1, room.total_questions)

    async def end_question(self, room_code: str, index: int):
        """Deferred end of question `index`. A no-op if anything moved on."""
        room = self.registry.find(room_code)
        if room is None:
            return
        async with room.lock:
            if self.registry.find(room_code) is not room:
                return
            await self._finish_question(room, index)

    async def _finish_question(self, room: Room, index: int):
        question = room.end_question(index)
        if question is None:
            return
        await self.hub.broadcast(room.code, "question:end", {
            "correctIndices": question.correct_indices,
            "leaderboard": make_leaderboard(room.players.values()),
        })
        logger.info("Room %s question %d ended", room.code, index + 1)

    # ------------------------------------------------------------------
    # Player events
    # ------------------------------------------------------------------

    async def join(self, connection_id: str, data: dict):
        payload = _parse(JoinPayload, data)
        room = self.registry.get(payload.room_code)

        async with room.lock:
            if self.registry.find(room.code) is not room:
                raise NotFound("Room not found")
            if connection_id == room.host_connection_id:
                raise BadRequest("The host cannot join as a player")
            if connection_id in room.players:
                raise Ignored("Already joined")
            if len(room.players) >= config.MAX_PLAYERS_PER_ROOM:
                raise InvalidState("Room is full")

            room.add_player(connection_id, payload.name)
            room.touch()
            self.hub.join(room.code, connection_id)
            await self._broadcast_players(room)
            await self.hub.broadcast(room.code, "lobby:update", {"count": len(room.players)})
        logger.info("Player joined: %s (%s) Room: %s", payload.name, connection_id, room.code)

    async def answer(self, connection_id: str, data: dict):
        try:
            payload = AnswerPayload.model_validate(data)
        except ValidationError:
            raise Ignored("Malformed answer")
        room = self.registry.find(payload.room_code)
        if room is None:
            raise Ignored("Room not found")

        async with room.lock:
            if self.registry.find(room.code) is not room:
                raise Ignored("Room closed")
            player = room.players.get(connection_id)
            if player is None or player["answered"]:
                raise Ignored("Unknown player or already answered")
            question = room.current_question
            if room.state != QUESTION_ACTIVE or question is None:
                raise Ignored("No question is active")

            now = self.clock()
            if config.REJECT_LATE_ANSWERS and now > room.question_deadline:
                raise Ignored("Answer arrived after the deadline")
            remaining_ms = max(0, room.question_deadline - now)

            player["answered"] = True
            points = score_answer(question.correct_indices, payload.choice_indices, remaining_ms)
            player["score"] += points
            room.touch()

            await self.hub.send(connection_id, "player:answer_result", {"correct": points > 0})
            await self.hub.send(room.host_connection_id, "host:leaderboard", {
                "standings": make_leaderboard(room.players.values()),
            })
            logger.debug("Room %s: %s scored %d", room.code, player["name"], points)

            if config.END_ON_ALL_ANSWERED and room.all_answered():
                room.cancel_timer()
                await self._finish_question(room, room.current_question_index)

    # ------------------------------------------------------------------
    # Disconnects
    # ------------------------------------------------------------------

    async def disconnect(self, connection_id: str):
        self._msg_timestamps.pop(connection_id, None)

        for room in self.registry.rooms_hosted_by(connection_id):
            async with room.lock:
                await self._close_room(room, notify=True)
            logger.info("Room %s closed (host disconnected)", room.code)

        for room in self.registry.rooms_with_player(connection_id):
            async with room.lock:
                player = room.remove_player(connection_id)
                if player is None:
                    continue
                self.hub.leave(room.code, connection_id)
                await self._broadcast_players(room)
            logger.info("Player left (%s) from room %s", connection_id, room.code)

    async def _close_room(self, room: Room, notify: bool):
        """Remove a room from the registry; caller holds room.lock."""
        await self.registry.delete(room.code)
        if notify:
            await self.hub.broadcast(room.code, "game:closed")
        self.hub.discard_group(room.code)

    async def _broadcast_players(self, room: Room):
        await self.hub.broadcast(room.code, "host:players_update", {"players": room.player_list()})

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def room_summary(self, room_code: str) -> dict:
        room = self.registry.get(room_code.strip().upper())
        return {
            "roomCode": room.code,
            "playerCount": len(room.players),
            "state": room.state,
            "totalQuestions": room.total_questions,
        }


socket_manager = SessionCoordinator()
