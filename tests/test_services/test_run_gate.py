"""Tests for the non-blocking run gate."""

from __future__ import annotations

import asyncio

import pytest

from reposync.services.sync_service import RunGate


class TestRunGate:
    async def test_second_entry_is_refused_while_held(self) -> None:
        gate = RunGate()
        async with gate.try_enter() as first:
            assert first is True
            assert gate.busy is True
            async with gate.try_enter() as second:
                assert second is False
            assert gate.busy is True
        assert gate.busy is False

    async def test_gate_is_released_on_error(self) -> None:
        gate = RunGate()
        with pytest.raises(RuntimeError):
            async with gate.try_enter():
                raise RuntimeError("boom")
        assert gate.busy is False

    async def test_concurrent_tasks_are_turned_away(self) -> None:
        gate = RunGate()
        release = asyncio.Event()
        results: list[bool] = []

        async def hold() -> None:
            async with gate.try_enter() as entered:
                results.append(entered)
                await release.wait()

        async def attempt() -> None:
            async with gate.try_enter() as entered:
                results.append(entered)

        holder = asyncio.create_task(hold())
        await asyncio.sleep(0)
        await attempt()
        release.set()
        await holder
        assert results == [True, False]
        async with gate.try_enter() as entered:
            assert entered is True
