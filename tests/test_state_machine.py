"""Tests for CaptureSession: phases, transitions, staleness and resource release."""

from __future__ import annotations

import asyncio

import pytest

from snapclassify.orchestrator.errors import (
    BusyError, InvalidTransition, PermissionDenied, UploadDecodeError,
)
from snapclassify.orchestrator import phases

from conftest import FixedHandle, StaticRuntime, png_bytes


def run(coro):
    return asyncio.run(coro)


# ── Initialization ──────────────────────────────────────────────────


class TestStart:
    def test_model_ready(self, make_session):
        session, _ = make_session()
        assert session.phase == phases.INITIALIZING
        snap = run(session.start())
        assert snap.phase == phases.READY
        assert snap.error is None

    def test_model_failure_is_fatal(self, make_session, mock_runtime):
        session, _ = make_session(runtime=mock_runtime(fail=True))

        async def scenario():
            snap = await session.start()
            with pytest.raises(InvalidTransition):
                await session.retry()
            with pytest.raises(InvalidTransition):
                await session.open_camera()
            return snap

        snap = run(scenario())
        assert snap.phase == phases.ERROR
        assert snap.error.code == "MODEL_LOAD"
        assert snap.error.recoverable is False

    def test_close_during_pending_load_disposes_model(self, make_session, pool):
        handle = FixedHandle(pool, [0.5, 0.5])
        runtime = StaticRuntime(handle, gated=True)
        session, _ = make_session(runtime=runtime)
        seen = []

        async def scenario():
            task = asyncio.create_task(session.start())
            await runtime.started.wait()
            await session.close()
            runtime.gate.set()
            await task
            seen.append(session.phase)

        run(scenario())
        assert handle.disposed
        assert seen == [phases.INITIALIZING]
        assert session.loader.handle is None


# ── Capture flow ────────────────────────────────────────────────────


class TestCaptureFlow:
    def test_environment_capture_classify_retry_scenario(self, make_session, mock_runtime, pool, tmp_path):
        labels = tmp_path / "labels.txt"
        labels.write_text("cat\ndog\nbird\n", encoding="utf-8")
        session, devices = make_session(runtime=mock_runtime(num_classes=3), labels_path=str(labels))

        async def scenario():
            await session.start()
            snap = await session.open_camera()
            assert snap.phase == phases.CAPTURING
            assert snap.streaming
            snap = await session.capture()
            assert snap.phase == phases.PREVIEWING
            assert snap.frame.mirrored is False
            snap = await session.confirm()
            assert snap.phase == phases.DONE
            done = snap
            snap = await session.retry()
            return done, snap

        done, after = run(scenario())
        assert devices.requests[0].facing == "environment"
        assert len(done.predictions) == 3
        assert sum(p.probability for p in done.predictions) == pytest.approx(1.0, abs=1e-4)
        probs = [p.probability for p in done.predictions]
        assert probs == sorted(probs, reverse=True)

        assert after.phase == phases.READY
        assert after.frame is None
        assert after.predictions is None
        assert pool.num_tensors == 0
        assert devices.active_streams == 0

    def test_without_preview_step_goes_straight_to_done(self, make_session):
        session, devices = make_session(preview_step=False)

        async def scenario():
            await session.start()
            await session.open_camera()
            return await session.capture()

        snap = run(scenario())
        assert snap.phase == phases.DONE
        assert snap.predictions
        assert devices.active_streams == 0

    def test_retake_discards_frame_and_keeps_stream(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            return await session.retake()

        snap = run(scenario())
        assert snap.phase == phases.CAPTURING
        assert snap.frame is None
        assert devices.active_streams == 1
        assert len(devices.requests) == 1

    def test_switch_to_front_mirrors_capture(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.switch_facing()
            return await session.capture()

        snap = run(scenario())
        assert snap.facing == "user"
        assert snap.frame.mirrored is True
        assert devices.active_at_request == [0, 0]
        assert devices.active_streams == 1

    def test_switch_in_preview_returns_to_capturing(self, make_session):
        session, _ = make_session()

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            return await session.switch_facing()

        snap = run(scenario())
        assert snap.phase == phases.CAPTURING
        assert snap.frame is None

    def test_close_camera_returns_to_ready(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            await session.open_camera()
            return await session.close_camera()

        snap = run(scenario())
        assert snap.phase == phases.READY
        assert devices.active_streams == 0

    def test_invalid_transitions_leave_state_untouched(self, make_session):
        session, _ = make_session()

        async def scenario():
            await session.start()
            for action in (session.capture, session.confirm, session.retake, session.retry, session.switch_facing):
                with pytest.raises(InvalidTransition):
                    await action()
            return session.snapshot()

        assert run(scenario()).phase == phases.READY


# ── Errors ──────────────────────────────────────────────────────────


class TestErrors:
    def test_camera_error_recoverable_via_retry(self, make_session):
        session, devices = make_session()
        devices.fail_with = PermissionDenied()

        async def scenario():
            await session.start()
            failed = await session.open_camera()
            devices.fail_with = None
            recovered = await session.retry()
            return failed, recovered

        failed, recovered = run(scenario())
        assert failed.phase == phases.ERROR
        assert failed.error.code == "PERMISSION_DENIED"
        assert failed.error.recoverable is True
        assert failed.error.message == PermissionDenied.message
        assert recovered.phase == phases.CAPTURING
        assert recovered.error is None
        assert devices.active_streams == 1

    def test_inference_error_degrades_to_empty_result(self, make_session, mock_runtime, pool):
        # runtime emits 5 classes, taxonomy has 10
        session, _ = make_session(runtime=mock_runtime(num_classes=5))

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            return await session.confirm()

        snap = run(scenario())
        assert snap.phase == phases.DONE
        assert snap.predictions == ()
        assert snap.error is None
        assert pool.num_tensors == 0


# ── Upload path ─────────────────────────────────────────────────────


class TestSupplyImage:
    def test_upload_classified_directly(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            return await session.supply_image(png_bytes())

        snap = run(scenario())
        assert snap.phase == phases.DONE
        assert snap.frame.source == "upload"
        assert snap.frame.mirrored is False
        assert (snap.frame.width, snap.frame.height) == (64, 48)
        assert devices.requests == []

    def test_undecodable_upload_keeps_state(self, make_session):
        session, _ = make_session()

        async def scenario():
            await session.start()
            with pytest.raises(UploadDecodeError):
                await session.supply_image(b"definitely not an image")
            return session.snapshot()

        snap = run(scenario())
        assert snap.phase == phases.READY
        assert snap.frame is None


# ── Concurrency ─────────────────────────────────────────────────────


class TestConcurrency:
    def _gated(self, pool):
        handle = FixedHandle(pool, [0.1] * 9 + [0.1], input_size=(32, 32), gated=True)
        return handle, StaticRuntime(handle)

    def test_superseded_result_is_dropped_and_second_classify_busy(self, make_session, pool):
        handle, runtime = self._gated(pool)
        session, devices = make_session(runtime=runtime)

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            first = asyncio.create_task(session.confirm())
            await handle.entered.wait()
            assert session.phase == phases.CLASSIFYING

            await session.retry()
            assert session.phase == phases.READY
            await session.open_camera()
            await session.capture()
            with pytest.raises(BusyError):
                await session.confirm()
            assert session.phase == phases.PREVIEWING
            assert session.frame is not None

            handle.gate.set()
            await first
            stale = session.snapshot()
            final = await session.confirm()
            return stale, final

        stale, final = run(scenario())
        assert stale.phase == phases.PREVIEWING
        assert stale.predictions is None
        assert final.phase == phases.DONE
        assert len(final.predictions) == 3
        assert handle.calls == 2
        assert pool.num_tensors == 0
        assert devices.active_streams == 0

    def test_current_result_applied_after_rejected_second_call(self, make_session, pool):
        handle, runtime = self._gated(pool)
        session, _ = make_session(runtime=runtime)

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            first = asyncio.create_task(session.confirm())
            await handle.entered.wait()
            with pytest.raises(BusyError):
                await session.engine.classify(session.frame, handle)
            handle.gate.set()
            return await first

        snap = run(scenario())
        assert snap.phase == phases.DONE
        assert len(snap.predictions) == 3
        assert pool.num_tensors == 0

    def test_close_during_classification_drops_result(self, make_session, pool):
        handle, runtime = self._gated(pool)
        session, devices = make_session(runtime=runtime)

        async def scenario():
            await session.start()
            await session.open_camera()
            await session.capture()
            first = asyncio.create_task(session.confirm())
            await handle.entered.wait()
            await session.close()
            handle.gate.set()
            await first

        run(scenario())
        assert session.predictions is None
        assert session.phase == phases.CLASSIFYING
        assert handle.disposed
        assert pool.num_tensors == 0
        assert devices.active_streams == 0

    def test_switch_while_capture_pending_keeps_new_stream(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            await session.open_camera()
            devices.read_gate = asyncio.Event()
            pending = asyncio.create_task(session.capture())
            while devices.reads_pending == 0:
                await asyncio.sleep(0)

            devices.gate = asyncio.Event()
            switching = asyncio.create_task(session.switch_facing())
            while len(devices.requests) < 2:
                await asyncio.sleep(0)
            # the old stream is already stopped, so its read comes back empty
            devices.read_gate.set()
            await pending
            assert session.phase == phases.CAPTURING
            assert session.error is None

            devices.gate.set()
            return await switching

        snap = run(scenario())
        assert snap.phase == phases.CAPTURING
        assert snap.error is None
        assert snap.frame is None
        assert snap.facing == "user"
        assert snap.streaming
        assert devices.active_streams == 1
        assert devices.active_at_request == [0, 0]

    def test_capture_before_stream_ready_is_rejected(self, make_session):
        session, devices = make_session()

        async def scenario():
            await session.start()
            devices.gate = asyncio.Event()
            opening = asyncio.create_task(session.open_camera())
            while not devices.requests:
                await asyncio.sleep(0)
            with pytest.raises(InvalidTransition):
                await session.capture()
            assert session.phase == phases.CAPTURING
            devices.gate.set()
            return await opening

        snap = run(scenario())
        assert snap.phase == phases.CAPTURING
        assert snap.error is None
        assert snap.streaming
        assert devices.active_streams == 1
