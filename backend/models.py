"""Inbound payload models.

Field names follow the client protocol (camelCase on the wire); the models
expose snake_case attributes.
"""
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator, model_validator
from typing import List, Optional, Union
import re

import config


def strip_control_chars(text: str) -> str:
    """Drop control characters; quiz content is otherwise delivered as sent."""
    return re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text).strip()


def sanitize_text(text: str) -> str:
    """Strip HTML tags and control characters from client-supplied text."""
    text = re.sub(r'<[^>]+>', '', text)
    return strip_control_chars(text)


class Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    choices: List[str]
    correct_indices: List[int] = Field(alias="correctIndices")
    time_limit_sec: Optional[int] = Field(default=None, alias="timeLimitSec")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v: str) -> str:
        v = strip_control_chars(v)[:config.MAX_QUESTION_TEXT_LENGTH]
        if not v:
            raise ValueError('Question text must not be empty')
        return v

    @field_validator('choices')
    @classmethod
    def validate_choices(cls, v: List[str]) -> List[str]:
        if len(v) < 2 or len(v) > config.MAX_CHOICES:
            raise ValueError(f'Question must have 2-{config.MAX_CHOICES} choices')
        choices = [strip_control_chars(c)[:config.MAX_CHOICE_LENGTH] for c in v]
        if not all(choices):
            raise ValueError('Choices must not be empty')
        return choices

    @field_validator('correct_indices', mode='before')
    @classmethod
    def coerce_correct_indices(cls, v):
        if isinstance(v, int):
            return [v]
        return v

    @field_validator('correct_indices')
    @classmethod
    def validate_correct_indices(cls, v: List[int]) -> List[int]:
        v = sorted(set(v))
        if not v:
            raise ValueError('Question needs at least one correct choice')
        return v

    @field_validator('time_limit_sec')
    @classmethod
    def validate_time_limit(cls, v: Optional[int]) -> Optional[int]:
        # 0 means "use the default", as the original client sends it
        if not v:
            return None
        if v < 0 or v > config.MAX_TIME_LIMIT:
            raise ValueError(f'Time limit must be 1-{config.MAX_TIME_LIMIT} seconds')
        return v

    @model_validator(mode='after')
    def check_indices_in_range(self):
        if any(i < 0 or i >= len(self.choices) for i in self.correct_indices):
            raise ValueError('Correct index out of range')
        return self

    @property
    def time_limit(self) -> int:
        return self.time_limit_sec or config.DEFAULT_TIME_LIMIT

    @property
    def has_multiple_answers(self) -> bool:
        return len(self.correct_indices) > 1


class Quiz(BaseModel):
    title: str = ""
    questions: List[Question]

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        return strip_control_chars(v)[:config.MAX_QUESTION_TEXT_LENGTH]

    @field_validator('questions')
    @classmethod
    def validate_questions(cls, v: List[Question]) -> List[Question]:
        if len(v) == 0:
            raise ValueError('Quiz must have at least 1 question')
        if len(v) > config.MAX_QUESTIONS:
            raise ValueError(f'Quiz must have at most {config.MAX_QUESTIONS} questions')
        return v


class RoomPayload(BaseModel):
    room_code: str = Field(validation_alias=AliasChoices("roomCode", "room_code"))

    @field_validator('room_code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()


class CreateRoomPayload(BaseModel):
    token: Optional[str] = Field(default=None, validation_alias=AliasChoices("token", "authToken"))
    quiz: Optional[dict] = None


class JoinPayload(RoomPayload):
    name: str = Field(validation_alias=AliasChoices("name", "displayName"))

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = sanitize_text(v)
        if not v or len(v) > config.MAX_NAME_LENGTH:
            raise ValueError(f'Name must be 1-{config.MAX_NAME_LENGTH} characters')
        return v


class AnswerPayload(RoomPayload):
    choice_indices: Union[int, List[int]] = Field(
        validation_alias=AliasChoices("choiceIndices", "choice_indices")
    )
