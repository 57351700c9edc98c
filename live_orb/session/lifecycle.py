"""
Live session lifecycle and reconnection state machine.

Owns the single logical session: connects, forwards microphone frames while
open, feeds inbound events to the classifier and replaces the session after
transport failures with a fixed-delay, single in-flight reconnect.

States:
    DISCONNECTED -> CONNECTING -> OPEN -> {CLOSING, ERRORING}
        -> RECONNECTING -> CONNECTING -> ...
DISCONNECTED is only re-entered on explicit teardown (stop()).
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from live_orb.backends.base import LiveConnection, LiveEvent, LiveTransport
from live_orb.config import OrbConfig, get_config
from live_orb.core.epoch import InterruptionEpoch
from live_orb.session.capture import MicrophoneCapture
from live_orb.session.classifier import EventClassifier
from live_orb.session.playback import Decoder, OutputClock, PlaybackScheduler
from live_orb.session.prompts import build_greeting, build_system_instruction
from live_orb.session.state import (
    NEUTRAL,
    GroundingLinkRing,
    HistoryLog,
    SessionSignals,
    TurnAccumulator,
    UserProfile,
)

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"  # Unexpected close observed
    ERRORING = "erroring"  # Transport error observed
    RECONNECTING = "reconnecting"  # Waiting out the reconnect delay


class LiveSessionManager:
    """
    Streaming audio session manager.

    Usage:
        manager = LiveSessionManager(transport, profile, output=SoundDeviceOutput(),
                                     capture=MicrophoneCapture())
        async with manager:
            await manager.wait_closed()
    """

    def __init__(
        self,
        transport: LiveTransport,
        profile: UserProfile,
        config: Optional[OrbConfig] = None,
        output: Optional[OutputClock] = None,
        capture: Optional[MicrophoneCapture] = None,
        signals: Optional[SessionSignals] = None,
        decoder: Optional[Decoder] = None,
    ):
        self.config = config or get_config()
        self.transport = transport
        self.profile = profile
        self.capture = capture

        if output is None:
            from live_orb.session.output import SoundDeviceOutput

            output = SoundDeviceOutput(
                sample_rate=self.config.audio.output_sample_rate,
                device=self.config.audio.output_device,
            )
        self.output = output

        self.signals = signals or SessionSignals()
        self.history = HistoryLog()
        self.links = GroundingLinkRing(cap=self.config.session.grounding_link_cap)
        self.turn = TurnAccumulator()
        self.epoch = InterruptionEpoch()
        self.scheduler = PlaybackScheduler(self.output, self.epoch, self.signals, decoder=decoder)
        self.classifier = EventClassifier(
            self.turn,
            self.history,
            self.links,
            self.signals,
            self.scheduler,
            on_transport_lost=self._on_transport_lost,
            moods=self.config.session.mood_vocabulary,
        )

        self._state = SessionState.DISCONNECTED
        self._active = False
        self._connection: Optional[LiveConnection] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._sender_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._frames: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending_text: list[str] = []
        self._closed_event: Optional[asyncio.Event] = None
        # Bumped by every connect attempt and by stop(); older attempts lose
        self._connect_generation = 0

        self._on_state_change: Optional[Callable[[SessionState, SessionState], None]] = None

        self.connect_attempts = 0
        self.dropped_frames = 0

    # ── State ──

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        """True between start() and stop(): the user wants a live session."""
        return self._active

    @property
    def connection(self) -> Optional[LiveConnection]:
        return self._connection

    @property
    def capturing(self) -> bool:
        return self.capture is not None and self.capture.running

    def set_callbacks(
        self,
        on_state_change: Optional[Callable[[SessionState, SessionState], None]] = None,
    ) -> None:
        """Set callback for lifecycle transitions, called with (old, new)."""
        self._on_state_change = on_state_change

    def _set_state(self, new_state: SessionState) -> None:
        if new_state == self._state:
            return
        old, self._state = self._state, new_state
        logger.debug("Session state: %s -> %s", old.value, new_state.value)
        if self._on_state_change:
            try:
                self._on_state_change(old, new_state)
            except Exception as e:
                logger.error("on_state_change error: %s", e)

    # ── Start / stop ──

    async def start(self) -> None:
        """Open audio output, connect and start capture."""
        if self._active:
            return

        self._loop = asyncio.get_running_loop()
        self._closed_event = asyncio.Event()
        self._active = True
        try:
            self.output.open()
            self._frames = asyncio.Queue(maxsize=self.config.session.send_queue_size)
            self._sender_task = self._loop.create_task(self._send_loop())
            await self._connect()
            self._start_capture()
        except BaseException:
            await self.stop()
            raise

    async def stop(self) -> None:
        """Explicit teardown. Releases capture, transport, playback and output."""
        self._active = False
        self._connect_generation += 1
        self._cancel_reconnect_timer()
        try:
            if self.capture is not None:
                self.capture.stop()
        finally:
            tasks = [t for t in (self._receive_task, self._sender_task) if t is not None]
            for task in tasks:
                if task is not asyncio.current_task():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._receive_task = None
            self._sender_task = None

            connection, self._connection = self._connection, None
            if connection is not None:
                await self._close_quietly(connection)

            # Let background closes of discarded sessions finish
            closing = [t for t in self._background if t is not asyncio.current_task()]
            if closing:
                await asyncio.gather(*closing, return_exceptions=True)

            # The user's partial turn is kept in the history
            self.scheduler.interrupt(before_drain=self.classifier.archive_turn)
            await self.scheduler.cancel_pending()
            self.output.close()
            self.signals.update(reconnecting=False, assistant_speaking=False, searching=False)
            self._set_state(SessionState.DISCONNECTED)
            if self._closed_event is not None:
                self._closed_event.set()
            logger.info("Live session stopped")

    async def wait_closed(self) -> None:
        """Block until stop() has completed."""
        if self._closed_event is None:
            return
        await self._closed_event.wait()

    async def __aenter__(self) -> "LiveSessionManager":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    # ── Connecting ──

    async def _connect(self) -> bool:
        """One connect attempt; schedules a reconnect on failure."""
        if self._reconnect_task is not None and self._reconnect_task is not asyncio.current_task():
            self._reconnect_task.cancel()
        self._reconnect_task = None

        self._set_state(SessionState.CONNECTING)
        self.signals.update(reconnecting=True, status="Connecting...")
        self.connect_attempts += 1
        attempt = self.connect_attempts
        self._connect_generation += 1
        generation = self._connect_generation

        instruction = build_system_instruction(self.profile, self.config.session.mood_vocabulary)
        try:
            connection = await self.transport.connect(instruction)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Connect attempt %d failed: %s", attempt, e)
            if self._active and generation == self._connect_generation:
                self._schedule_reconnect()
            return False

        if not self._active or generation != self._connect_generation:
            # Torn down or superseded while the attempt was in flight
            logger.debug("Connect attempt %d superseded; closing its session", attempt)
            await self._close_quietly(connection)
            return False

        if self._connection is not None:
            self._discard_connection()
        self._connection = connection
        self._set_state(SessionState.OPEN)
        self.signals.update(reconnecting=False, error="", status="Connected.")
        logger.info("Live session connected (attempt %d)", attempt)

        self._receive_task = self._loop.create_task(self._receive_loop(connection))
        await self._send_text_now(connection, build_greeting(self.profile))
        await self._flush_pending_text(connection)
        return True

    async def _receive_loop(self, connection: LiveConnection) -> None:
        try:
            async for event in connection.receive():
                if connection is not self._connection:
                    return
                self.classifier.dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if connection is self._connection:
                self.classifier.dispatch(LiveEvent.transport_error(e))
        else:
            if connection is self._connection:
                self.classifier.dispatch(LiveEvent.transport_closed("server closed the session"))

    def _on_transport_lost(self, event: LiveEvent) -> None:
        if not self._active:
            logger.debug("Transport loss after teardown ignored")
            return
        if self._state in (SessionState.RECONNECTING, SessionState.CONNECTING):
            logger.debug("Already reconnecting; ignoring transport loss")
            return

        if event.error is not None:
            self._set_state(SessionState.ERRORING)
            logger.warning("Live session error: %s", event.error)
        else:
            self._set_state(SessionState.CLOSING)
            logger.warning("Live session closed: %s", event.close_reason or "unknown reason")

        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        """Discard the current session and arm the (single) reconnect timer."""
        self._set_state(SessionState.RECONNECTING)
        self.signals.update(reconnecting=True, searching=False, status="Reconnecting...")
        self._discard_connection()
        self._cancel_reconnect_timer()

        delay = self.config.session.reconnect_delay
        logger.info("Reconnecting in %.1fs", delay)
        self._reconnect_task = self._loop.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._active:
            await self._connect()

    def _cancel_reconnect_timer(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _discard_connection(self) -> None:
        """Forget the current session; close it in the background."""
        connection, self._connection = self._connection, None
        receive_task, self._receive_task = self._receive_task, None
        if receive_task is not None and receive_task is not asyncio.current_task():
            receive_task.cancel()
        if connection is not None:
            self._spawn(self._close_quietly(connection))

    async def _close_quietly(self, connection: LiveConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            logger.debug("Error closing discarded session: %s", e)

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ── Reset ──

    async def reset(self) -> None:
        """
        User-initiated restart with a fresh session.

        Closes the current session (fire-and-forget), silences playback and
        invalidates in-flight decodes, clears transient turn state (the
        history is kept), then connects again and resumes capture.
        """
        logger.info("Resetting live session")
        self._cancel_reconnect_timer()
        self._discard_connection()

        self.scheduler.interrupt()
        self.classifier.reset()
        self._pending_text.clear()
        self.signals.update(
            searching=False, analyzing=False, assistant_speaking=False,
            mood=NEUTRAL, error="",
        )

        if not self._active:
            await self.start()
            return

        await self._connect()
        self._start_capture()

    # ── Capture control ──

    def pause_capture(self) -> bool:
        """Stop sending microphone audio; the session itself stays open."""
        if not self.capturing:
            return False
        self.capture.stop()
        self.signals.update(status="Paused.")
        logger.info("Capture paused")
        return True

    def resume_capture(self) -> bool:
        """Restart microphone capture after pause_capture()."""
        if not self._active or self.capture is None:
            return False
        self._start_capture()
        self.signals.update(status="Listening...")
        logger.info("Capture resumed")
        return True

    # ── Outbound ──

    def _start_capture(self) -> None:
        if self.capture is None or self.capture.running:
            return
        self.capture.start(self._on_captured_frame)

    def _on_captured_frame(self, frame: bytes) -> None:
        """Called on the audio thread."""
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._queue_frame, frame)

    def _queue_frame(self, frame: bytes) -> None:
        if self._frames is None:
            return
        try:
            self._frames.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1

    async def _send_loop(self) -> None:
        while True:
            frame = await self._frames.get()
            await self.send_frame(frame)

    async def send_frame(self, frame: bytes) -> bool:
        """
        Forward one microphone frame.

        Frames are dropped unless the session is open; live speech is not
        buffered across a reconnect.
        """
        connection = self._connection
        if self._state is not SessionState.OPEN or connection is None:
            self.dropped_frames += 1
            return False
        try:
            await connection.send_audio(frame, self.config.audio.input_sample_rate)
        except Exception as e:
            # The receive loop reports the failure and drives the reconnect
            logger.debug("Audio send failed: %s", e)
            self.dropped_frames += 1
            return False
        return True

    async def inject_text(self, text: str) -> bool:
        """
        Send a text request into the session.

        Queued and delivered on the next open if the session is not open.

        Returns:
            True if sent immediately
        """
        connection = self._connection
        if self._state is SessionState.OPEN and connection is not None:
            return await self._send_text_now(connection, text)
        self._pending_text.append(text)
        logger.debug("Session not open; queued text injection (%d pending)", len(self._pending_text))
        return False

    async def _send_text_now(self, connection: LiveConnection, text: str) -> bool:
        try:
            await connection.send_text(text)
        except Exception as e:
            logger.warning("Text injection failed: %s", e)
            return False
        return True

    async def _flush_pending_text(self, connection: LiveConnection) -> None:
        while self._pending_text and connection is self._connection:
            text = self._pending_text.pop(0)
            if not await self._send_text_now(connection, text):
                self._pending_text.insert(0, text)
                return

    def note(self, text: str) -> None:
        """Record a system event in the history."""
        self.history.append("system", text)
