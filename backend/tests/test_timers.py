"""
Tests for timers.TaskScheduler and for question timers racing host actions.
These use the real scheduler with short delays.
"""
import sys
import os
import asyncio
import logging

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rooms import QUESTION_ACTIVE, QUESTION_ENDED, RoomRegistry
from socket_manager import SessionCoordinator
from timers import TaskScheduler
from transport import ConnectionHub
from test_socket_unit import FakeClock, create_room, join, next_question


class ShortScheduler(TaskScheduler):
    """Real scheduler that swaps every question timer for a short delay."""
    def __init__(self, delay=0.05):
        self.delay = delay

    def call_later(self, delay, callback, *args):
        return super().call_later(self.delay, callback, *args)


def make_quiz():
    # Distinct correct indices tell the question:end frames apart
    return {
        "title": "Timer Quiz",
        "questions": [
            {"text": "First?", "choices": ["A", "B"], "correctIndices": [0]},
            {"text": "Second?", "choices": ["A", "B"], "correctIndices": [1]},
        ],
    }


def make_coordinator(delay=0.05):
    return SessionCoordinator(registry=RoomRegistry(), hub=ConnectionHub(),
                              scheduler=ShortScheduler(delay), clock=FakeClock())


def ends_for(ws, correct):
    return [m for m in ws.all("question:end") if m["correctIndices"] == correct]


class TestTaskScheduler:
    @pytest.mark.asyncio
    async def test_callback_runs_after_delay(self):
        calls = []

        async def callback(value):
            calls.append(value)

        task = TaskScheduler().call_later(0.01, callback, "fired")
        assert calls == []
        await task
        assert calls == ["fired"]

    @pytest.mark.asyncio
    async def test_cancelled_task_never_runs_callback(self):
        calls = []

        async def callback():
            calls.append(True)

        task = TaskScheduler().call_later(0.05, callback)
        task.cancel()
        await asyncio.sleep(0.1)
        assert task.done()
        assert calls == []

    @pytest.mark.asyncio
    async def test_callback_error_is_logged_not_raised(self, caplog):
        async def broken():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="timers"):
            task = TaskScheduler().call_later(0.01, broken)
            assert await task is None
        assert "Scheduled task broken failed" in caplog.text
        assert "boom" in caplog.text


class TestQuestionTimerRaces:
    @pytest.mark.asyncio
    async def test_timer_ends_question(self):
        sm = make_coordinator()
        code, host_ws = await create_room(sm, quiz=make_quiz())
        await next_question(sm, code)
        await asyncio.sleep(0.15)
        assert sm.registry.get(code).state == QUESTION_ENDED
        assert len(ends_for(host_ws, [0])) == 1

    @pytest.mark.asyncio
    async def test_advance_cancels_pending_timer(self):
        sm = make_coordinator(delay=0.05)
        code, host_ws = await create_room(sm, quiz=make_quiz())
        await next_question(sm, code)
        first_timer = sm.registry.get(code).timer_task

        await next_question(sm, code)
        await asyncio.sleep(0.01)
        assert first_timer.done()

        await asyncio.sleep(0.15)
        # Question 0 was skipped by the host, so only question 1 ever ends
        assert ends_for(host_ws, [0]) == []
        assert len(ends_for(host_ws, [1])) == 1

    @pytest.mark.asyncio
    async def test_end_and_advance_gathered(self):
        sm = make_coordinator(delay=5)
        code, host_ws = await create_room(sm, quiz=make_quiz())
        player_ws = await join(sm, code, "p1", "Alice")
        await next_question(sm, code)

        await asyncio.gather(sm.end_question(code, 0), next_question(sm, code))

        room = sm.registry.get(code)
        assert room.current_question_index == 1
        assert room.state == QUESTION_ACTIVE
        for ws in (host_ws, player_ws):
            assert len(ends_for(ws, [0])) <= 1
            types = [m["type"] for m in ws.sent_messages]
            starts = [i for i, t in enumerate(types) if t == "question:start"]
            ends = [i for i, t in enumerate(types) if t == "question:end"]
            assert len(starts) == 2
            # Any end of question 0 lands between the two starts
            assert all(starts[0] < i < starts[1] for i in ends)
        room.cancel_timer()

    @pytest.mark.asyncio
    async def test_timer_firing_while_host_advances(self):
        sm = make_coordinator(delay=0.02)
        code, host_ws = await create_room(sm, quiz=make_quiz())
        await next_question(sm, code)

        # Advance right around the moment the first timer fires
        await asyncio.sleep(0.02)
        await next_question(sm, code)
        await asyncio.sleep(0.1)

        assert len(ends_for(host_ws, [0])) <= 1
        assert len(ends_for(host_ws, [1])) == 1
        types = [m["type"] for m in host_ws.sent_messages]
        second_start = [i for i, t in enumerate(types) if t == "question:start"][1]
        assert all(m["correctIndices"] == [1]
                   for m in host_ws.sent_messages[second_start:] if m["type"] == "question:end")

    @pytest.mark.asyncio
    async def test_timer_after_room_closed_is_noop(self):
        sm = make_coordinator(delay=0.02)
        code, host_ws = await create_room(sm, quiz=make_quiz())
        await next_question(sm, code)
        timer = sm.registry.get(code).timer_task
        await sm.disconnect("host")
        await asyncio.sleep(0.06)
        assert timer.done()
        assert code not in sm.registry
        assert host_ws.all("question:end") == []
