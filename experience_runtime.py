"""
NDE Experience Runtime - Tick thread, command queue and boot sequence

The runtime owns the only thread that touches the sequencer, the
subsystems and the haptic emitter. HTTP handlers never call them
directly: they submit commands, which are drained at the top of the next
tick.

Per tick:
    1. drain queued commands
    2. run scheduled actions that are due (late init, auto-start, intro)
    3. sequencer tick (subsystems, then haptics)
    4. flush the pending haptic frame
    5. status broadcast (rate-limited)
"""

import logging
import queue
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from core.experience import (
    ActionScheduler,
    MonotonicClock,
    PhaseSequencer,
    create_emitter,
)
from experience_settings import ExperienceConfig, default_settings
from experience_state import ExperienceStatusTracker
from intro_sequence_module import IntroSequence
from spatial_audio_module import SpatialAudioSubsystem
from star_field_module import StarFieldSubsystem
from visual_effects_module import VisualEffectsSubsystem

logger = logging.getLogger(__name__)

COMMANDS = ('start', 'start_at_phase', 'stop', 'toggle', 'intro')


class ExperienceRuntime:
    """Drives the experience sequencer from a single tick thread"""

    DEBUG_LOG_INTERVAL = 1.0

    def __init__(
        self,
        settings: Optional[Dict[str, Dict[str, Any]]] = None,
        clock=None,
        emitter=None,
        status_tracker: Optional[ExperienceStatusTracker] = None,
    ):
        self.settings = settings if settings is not None else default_settings()
        self.config = ExperienceConfig.from_settings(self.settings)
        self.clock = clock or MonotonicClock()

        if emitter is None:
            emitter = create_emitter(
                self.config.haptic_host,
                self.config.haptic_port,
                clock=self.clock,
                send_interval=self.config.send_interval,
                intensity_multiplier=self.config.intensity_multiplier,
                frequency_multiplier=self.config.frequency_multiplier,
                debug_log=self.config.haptic_debug_log,
            )
        self.emitter = emitter
        self.status_tracker = status_tracker or ExperienceStatusTracker(self.config.broadcast_hz)

        self.sequencer = PhaseSequencer(
            self.config.table,
            self.clock,
            fade_out_duration=self.config.fade_out_duration,
            haptic_sink=self.emitter,
            on_event=self.status_tracker.on_event,
        )
        self.star_field = StarFieldSubsystem(self.clock, self.settings.get('stars'))
        self.visual_effects = VisualEffectsSubsystem(self.clock, self.settings.get('visual'))
        self.audio = SpatialAudioSubsystem(self.clock, self.settings.get('audio'))
        for subsystem in (self.star_field, self.visual_effects, self.audio):
            self.sequencer.register(subsystem)

        self.scheduler = ActionScheduler()
        self.intro = IntroSequence(
            self.scheduler,
            self.clock,
            self.sequencer,
            visual_effects=self.visual_effects,
            star_field=self.star_field,
            settings=self.settings.get('intro'),
        )

        self._commands: "queue.Queue[Tuple[str, tuple]]" = queue.Queue()
        self._lock = threading.Lock()
        self._stop_flag = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._shut_down = False
        self.booted = False
        self.tick_count = 0
        self._last_debug_log: Optional[float] = None

    # ─────────────────────────────────────────────────────────
    # Boot
    # ─────────────────────────────────────────────────────────

    def boot(self) -> None:
        """Schedule late initialization; auto-start or debug start follows it."""
        if self.booted:
            return
        self.booted = True
        self.scheduler.schedule('late_init', self.clock.now(), self.config.init_delay, self._late_initialize)

    def _late_initialize(self) -> None:
        self.sequencer.mark_initialized()
        if self.config.debug_mode:
            logger.info(f"Debug mode: starting at phase {self.config.debug_start_phase}")
            self.sequencer.start_at_phase(self.config.debug_start_phase, now=self.scheduler.now)
            return
        logger.info(f"Experience auto-starts in {self.config.auto_start_delay:.1f}s")
        self.scheduler.schedule('auto_start', self.clock.now(), self.config.auto_start_delay, self._auto_start)

    def _auto_start(self) -> None:
        self.sequencer.start(now=self.scheduler.now)

    # ─────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────

    def submit(self, command: str, *args) -> bool:
        """Queue a command for the tick thread. Unknown commands are rejected."""
        if command not in COMMANDS:
            logger.warning(f"Unknown experience command: {command}")
            return False
        self._commands.put((command, args))
        return True

    def pending_commands(self) -> int:
        return self._commands.qsize()

    def _drain_commands(self, now: float) -> int:
        handled = 0
        while True:
            try:
                command, args = self._commands.get_nowait()
            except queue.Empty:
                return handled
            handled += 1
            self._execute(command, args, now)

    def _execute(self, command: str, args: tuple, now: float) -> None:
        # Any operator command supersedes a pending auto-start
        self.scheduler.cancel_by_name('auto_start')
        logger.info(f"Command: {command}{args if args else ''}")

        if command == 'start':
            self.sequencer.start(now=now)
        elif command == 'start_at_phase':
            self.sequencer.start_at_phase(*args, now=now)
        elif command == 'stop':
            self.sequencer.stop()
        elif command == 'toggle':
            if self.sequencer.is_running:
                self.sequencer.stop()
            else:
                self.sequencer.start(now=now)
        elif command == 'intro':
            restart = bool(args[0]) if args else False
            if restart:
                self.intro.reset()
            self.intro.begin()

    # ─────────────────────────────────────────────────────────
    # Tick
    # ─────────────────────────────────────────────────────────

    def tick(self, now: Optional[float] = None) -> bool:
        """One pass of the tick pipeline. Returns True if subsystems were updated."""
        with self._lock:
            if now is None:
                now = self.clock.now()
            self._drain_commands(now)
            self.scheduler.run_due(now)
            updated = self.sequencer.tick(now)
            self.emitter.flush(now)
            self.tick_count += 1
            self._debug_log(now)
        self.status_tracker.maybe_broadcast(now, self.status())
        return updated

    def _debug_log(self, now: float) -> None:
        if not self.config.debug_mode or not self.sequencer.is_running:
            return
        if self._last_debug_log is not None and now - self._last_debug_log < self.DEBUG_LOG_INTERVAL:
            return
        self._last_debug_log = now
        logger.info(
            f"Phase: {self.sequencer.current_phase} | Progress: {self.sequencer.progress:.2f} | "
            f"Elapsed: {self.sequencer.elapsed():.1f}s / {self.config.table.total_duration:.0f}s"
        )

    # ─────────────────────────────────────────────────────────
    # Thread control
    # ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Boot and start the tick thread"""
        if self._running:
            return
        self.boot()
        self._running = True
        self._stop_flag.clear()
        self._thread = threading.Thread(target=self._tick_loop, daemon=True)
        self._thread.start()
        logger.info(f"Experience runtime started at {self.config.tick_rate:.0f} ticks/s")

    def _tick_loop(self) -> None:
        interval = 1.0 / self.config.tick_rate
        while not self._stop_flag.is_set():
            frame_start = time.monotonic()
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Tick error: {e}", exc_info=True)
            sleep_time = interval - (time.monotonic() - frame_start)
            if sleep_time > 0:
                self._stop_flag.wait(sleep_time)

    def shutdown(self) -> None:
        """Stop the tick thread, stop the experience and close the emitter. Idempotent."""
        if self._shut_down:
            return
        self._shut_down = True
        self._stop_flag.set()
        self._running = False
        if self._thread:
            self._thread.join(timeout=1.0)
            self._thread = None
        with self._lock:
            self.scheduler.clear()
            self.sequencer.stop()
            self.emitter.shutdown()
        logger.info("Experience runtime shut down")

    @property
    def is_running(self) -> bool:
        return self._running

    # ─────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────

    def phases(self) -> List[Dict[str, Any]]:
        return self.config.table.to_list()

    def status(self) -> Dict[str, Any]:
        now = self.clock.now()
        return {
            'runtime': {
                'booted': self.booted,
                'thread_running': self._running,
                'tick_count': self.tick_count,
                'tick_rate': self.config.tick_rate,
                'debug_mode': self.config.debug_mode,
                'pending_commands': self.pending_commands(),
                'scheduled': self.scheduler.to_list(now),
            },
            'sequencer': self.sequencer.snapshot(),
            'subsystems': [s.snapshot() for s in self.sequencer.subsystems],
            'haptics': self.emitter.get_stats(),
            'intro': self.intro.snapshot(),
        }
