"""Tests for CompilationMonitor: generation counters and waiting."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from codehero.handlers.compilation import CompilationMonitor, CompilationOutcome


async def _compile_later(monitor, has_errors=False, delay=0.02):
    await asyncio.sleep(delay)
    await monitor.compilation_started()
    await asyncio.sleep(delay)
    await monitor.compilation_finished(has_errors)


class TestCompilationMonitor:
    @pytest.mark.asyncio
    async def test_wait_sees_compilation_after_mark(self):
        monitor = CompilationMonitor()
        mark = monitor.mark()
        task = asyncio.create_task(_compile_later(monitor, has_errors=True))
        outcome = await monitor.wait_for_compilation(mark, start_timeout=1, finish_timeout=1)
        await task
        assert outcome == CompilationOutcome.FINISHED
        assert monitor.generation == 1
        assert monitor.has_recent_errors()
        assert not monitor.is_compiling()

    @pytest.mark.asyncio
    async def test_compilation_before_wait_is_not_missed(self):
        monitor = CompilationMonitor()
        mark = monitor.mark()
        await monitor.compilation_started()
        await monitor.compilation_finished(False)
        outcome = await monitor.wait_for_compilation(mark, start_timeout=0.05, finish_timeout=0.05)
        assert outcome == CompilationOutcome.FINISHED
        assert not monitor.has_recent_errors()

    @pytest.mark.asyncio
    async def test_not_started(self):
        monitor = CompilationMonitor()
        outcome = await monitor.wait_for_compilation(monitor.mark(), start_timeout=0.05, finish_timeout=1)
        assert outcome == CompilationOutcome.NOT_STARTED

    @pytest.mark.asyncio
    async def test_started_but_never_finished(self):
        monitor = CompilationMonitor()
        mark = monitor.mark()
        await monitor.compilation_started()
        assert monitor.is_compiling()
        outcome = await monitor.wait_for_compilation(mark, start_timeout=0.05, finish_timeout=0.05)
        assert outcome == CompilationOutcome.TIMED_OUT

    @pytest.mark.asyncio
    async def test_finish_without_start_counts(self):
        monitor = CompilationMonitor()
        mark = monitor.mark()
        await monitor.compilation_finished(False)
        outcome = await monitor.wait_for_compilation(mark, start_timeout=0.05, finish_timeout=0.05)
        assert outcome == CompilationOutcome.FINISHED

    @pytest.mark.asyncio
    async def test_falls_back_to_console_errors(self):
        collector = MagicMock()
        collector.has_recent_errors.return_value = True
        monitor = CompilationMonitor(collector)
        assert monitor.has_recent_errors()

        await monitor.compilation_started()
        collector.clear_recent.assert_called_once()
        await monitor.compilation_finished(None)
        assert monitor.has_recent_errors()

        collector.has_recent_errors.return_value = False
        await monitor.compilation_finished(False)
        assert not monitor.has_recent_errors()

    @pytest.mark.asyncio
    async def test_emits_bus_events(self):
        bus = MagicMock()
        bus.emit = AsyncMock()
        monitor = CompilationMonitor(bus=bus)
        await monitor.compilation_started()
        await monitor.compilation_finished(True)
        types = [call.args[0].type for call in bus.emit.await_args_list]
        assert types == ["compilation_started", "compilation_finished"]
