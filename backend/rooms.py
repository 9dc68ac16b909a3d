from typing import Dict, List, Optional
import asyncio
import logging
import random
import string
import time

import config
from errors import InvalidState, NotFound
from models import Question, Quiz

logger = logging.getLogger(__name__)

# Question lifecycle states
NO_QUESTION = "NO_QUESTION"
QUESTION_ACTIVE = "QUESTION_ACTIVE"
QUESTION_ENDED = "QUESTION_ENDED"
GAME_OVER = "GAME_OVER"

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


class Room:
    def __init__(self, code: str, quiz: Quiz, host_identity: str, host_connection_id: str):
        self.code = code
        self.quiz = quiz
        self.host_identity = host_identity
        self.host_connection_id = host_connection_id
        self.players: Dict[str, dict] = {}  # connection_id -> {name, score, answered}
        self.state = NO_QUESTION
        self.current_question_index = -1
        self.question_deadline: Optional[int] = None  # epoch ms
        self.timer_task = None
        self.lock = asyncio.Lock()
        self.last_activity = time.time()

    def touch(self):
        """Update last activity timestamp."""
        self.last_activity = time.time()

    def is_expired(self) -> bool:
        return time.time() - self.last_activity > config.ROOM_TTL_SECONDS

    @property
    def total_questions(self) -> int:
        return len(self.quiz.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < self.total_questions:
            return self.quiz.questions[self.current_question_index]
        return None

    def add_player(self, connection_id: str, name: str) -> dict:
        player = {"name": name, "score": 0, "answered": False}
        self.players[connection_id] = player
        return player

    def remove_player(self, connection_id: str) -> Optional[dict]:
        return self.players.pop(connection_id, None)

    def player_list(self) -> List[dict]:
        return [dict(p) for p in self.players.values()]

    def advance(self, now_ms: int) -> Optional[Question]:
        """Move to the next question, or to GAME_OVER past the last one.

        Returns the question now active, or None when the game is over.
        """
        if self.state == GAME_OVER:
            raise InvalidState("Game is already over.")
        self.cancel_timer()
        self.current_question_index += 1
        question = self.current_question
        if question is None:
            self.current_question_index = self.total_questions
            self.state = GAME_OVER
            self.question_deadline = None
            return None

        for player in self.players.values():
            player["answered"] = False
        self.question_deadline = now_ms + question.time_limit * 1000
        self.state = QUESTION_ACTIVE
        return question

    def end_question(self, index: int) -> Optional[Question]:
        """Close the answer window for question `index` if it is still open."""
        if self.state != QUESTION_ACTIVE or self.current_question_index != index:
            return None
        self.state = QUESTION_ENDED
        self.question_deadline = None
        self.timer_task = None
        return self.current_question

    def all_answered(self) -> bool:
        return bool(self.players) and all(p["answered"] for p in self.players.values())

    def cancel_timer(self):
        if self.timer_task:
            self.timer_task.cancel()
            self.timer_task = None


class RoomRegistry:
    """Process-wide table of live rooms, keyed by join code."""

    def __init__(self):
        self.rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()

    def _generate_code(self) -> str:
        for _ in range(config.MAX_ROOM_CODE_ATTEMPTS):
            code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=config.ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        logger.error("No free room code after %d attempts", config.MAX_ROOM_CODE_ATTEMPTS)
        raise InvalidState("Could not allocate a room code. Please try again.")

    async def create(self, quiz: Quiz, host_identity: str, host_connection_id: str) -> Room:
        async with self._lock:
            if len(self.rooms) >= config.MAX_ROOMS:
                raise InvalidState("Too many active rooms. Please try again later.")
            code = self._generate_code()
            room = Room(code, quiz, host_identity, host_connection_id)
            self.rooms[code] = room
        return room

    def get(self, code: str) -> Room:
        room = self.rooms.get(code)
        if room is None:
            raise NotFound("Room not found")
        return room

    def find(self, code: str) -> Optional[Room]:
        return self.rooms.get(code)

    async def delete(self, code: str) -> Optional[Room]:
        async with self._lock:
            room = self.rooms.pop(code, None)
        if room:
            room.cancel_timer()
        return room

    def rooms_hosted_by(self, connection_id: str) -> List[Room]:
        return [r for r in self.rooms.values() if r.host_connection_id == connection_id]

    def rooms_with_player(self, connection_id: str) -> List[Room]:
        return [r for r in self.rooms.values() if connection_id in r.players]

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code: str) -> bool:
        return code in self.rooms
