"""
IntroSequence Module - Scripted intro that hands off to the main timeline

Stages (each a scheduled action on the runtime's ActionScheduler):
    heartbeat  - heartbeat pitch slows 1.0 -> 0.4
    flatline   - white flash
    blackout   - fade to black, hold
    ascension  - stars re-initialized, black -> white, camera tilts up 30 deg
    handoff    - sequencer.start_at_phase(handoff_phase)

The intro's own duration does not count against the main timeline: the
hand-off positions the sequencer at the start of the hand-off phase.
"""

from typing import Any, Dict, Optional
import logging

from core.experience import ActionScheduler, lerp

logger = logging.getLogger(__name__)

STAGES = ("heartbeat", "flatline", "blackout", "ascension")

FLASH_DURATION = 0.5
FADE_TO_BLACK_DURATION = 1.5
BLACK_TO_WHITE_DURATION = 3.0
HEARTBEAT_START_PITCH = 1.0
HEARTBEAT_END_PITCH = 0.4
CAMERA_TILT_DEGREES = 30.0


class IntroSequence:
    """Runs the dramatic intro once per boot (until reset())."""

    def __init__(
        self,
        scheduler: ActionScheduler,
        clock,
        sequencer,
        visual_effects=None,
        star_field=None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        settings = settings or {}
        self.scheduler = scheduler
        self.clock = clock
        self.sequencer = sequencer
        self.visual_effects = visual_effects
        self.star_field = star_field

        self.durations = {
            "heartbeat": float(settings.get("heartbeat_slowdown_duration", 5.0)),
            "flatline": float(settings.get("flatline_duration", 3.0)),
            "blackout": float(settings.get("blackout_duration", 4.0)),
            "ascension": float(settings.get("ascension_duration", 8.0)),
        }
        self.handoff_phase = int(settings.get("handoff_phase", 5))

        self.started = False
        self.finished = False
        self.stage: Optional[str] = None
        self.stage_started_at = 0.0

    def begin(self) -> bool:
        """Start the intro. Returns False if it already ran this boot."""
        if self.started:
            logger.warning("Intro already started, ignoring")
            return False
        self.started = True
        self.finished = False

        if self.sequencer.is_running:
            self.sequencer.stop()
        if self.visual_effects is not None:
            self.visual_effects.initialize()

        logger.info("Intro sequence started")
        self._enter("heartbeat")
        return True

    def reset(self) -> None:
        """Cancel a running intro and allow begin() again."""
        for name in STAGES + ("handoff",):
            self.scheduler.cancel_by_name(f"intro:{name}")
        self.started = False
        self.finished = False
        self.stage = None

    # ─────────────────────────────────────────────────────────
    # Stages
    # ─────────────────────────────────────────────────────────

    def _enter(self, stage: str) -> None:
        now = self.clock.now()
        self.stage = stage
        self.stage_started_at = now
        logger.info(f"Intro stage: {stage}")

        if stage == "flatline" and self.visual_effects is not None:
            self.visual_effects.flash_screen((1.0, 1.0, 1.0), FLASH_DURATION)
        elif stage == "blackout" and self.visual_effects is not None:
            self.visual_effects.fade_to_black(FADE_TO_BLACK_DURATION)
        elif stage == "ascension":
            if self.star_field is not None:
                self.star_field.initialize()
            if self.visual_effects is not None:
                self.visual_effects.fade_from_black_to_white(BLACK_TO_WHITE_DURATION)

        index = STAGES.index(stage)
        if index + 1 < len(STAGES):
            following = STAGES[index + 1]
            self.scheduler.schedule(f"intro:{following}", now, self.durations[stage],
                                    lambda: self._enter(following))
        else:
            self.scheduler.schedule("intro:handoff", now, self.durations[stage], self._handoff)

    def _handoff(self) -> None:
        self.stage = "handoff"
        self.finished = True
        logger.info(f"Intro finished, handing off to phase {self.handoff_phase}")
        if not self.sequencer.start_at_phase(self.handoff_phase, now=self.scheduler.now):
            logger.warning("Intro hand-off refused by sequencer")

    # ─────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────

    def stage_progress(self) -> float:
        if self.stage not in self.durations:
            return 1.0 if self.finished else 0.0
        duration = self.durations[self.stage]
        if duration <= 0:
            return 1.0
        return max(0.0, min(1.0, (self.clock.now() - self.stage_started_at) / duration))

    def heartbeat_pitch(self) -> float:
        if self.stage == "heartbeat":
            return lerp(HEARTBEAT_START_PITCH, HEARTBEAT_END_PITCH, self.stage_progress())
        return HEARTBEAT_START_PITCH if self.stage is None else HEARTBEAT_END_PITCH

    def camera_tilt(self) -> float:
        if self.stage == "ascension":
            return lerp(0.0, CAMERA_TILT_DEGREES, self.stage_progress())
        if self.stage == "handoff":
            return CAMERA_TILT_DEGREES
        return 0.0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "started": self.started,
            "finished": self.finished,
            "stage": self.stage,
            "stage_progress": round(self.stage_progress(), 4),
            "heartbeat_pitch": round(self.heartbeat_pitch(), 4),
            "camera_tilt": round(self.camera_tilt(), 2),
            "handoff_phase": self.handoff_phase,
        }
