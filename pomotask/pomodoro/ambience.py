from dataclasses import dataclass, replace
from typing import Optional

from .engine import Phase
from .errors import ValidationFailure

BREAK_SOUNDS = ("rain", "waves", "birds", "forest")
DEFAULT_SOUND = "rain"
NOTIFICATION_SOUND = "notification"


@dataclass(frozen=True)
class PlaybackDirective:
    """Desired state of the looping break clip. The view owns the audio."""

    sound_id: str
    should_play: bool
    should_loop: bool = True
    # load the clip again / seek to 0 before applying should_play
    rewind: bool = False

    def as_dict(self) -> dict:
        return {
            "sound_id": self.sound_id,
            "should_play": self.should_play,
            "should_loop": self.should_loop,
            "rewind": self.rewind,
        }


@dataclass(frozen=True)
class CueDirective:
    """Play once, never looped. Fired when a phase runs out."""

    sound_id: str = NOTIFICATION_SOUND
    should_loop: bool = False

    def as_dict(self) -> dict:
        return {"sound_id": self.sound_id, "should_loop": self.should_loop}


def compute_directive(phase: Phase, running: bool, sound_id: str) -> PlaybackDirective:
    return PlaybackDirective(
        sound_id=sound_id,
        should_play=phase is Phase.BREAK and running,
    )


class AmbienceController:
    def __init__(self, sound_id: str = DEFAULT_SOUND):
        self.sound_id = _check_sound(sound_id)
        self.current = compute_directive(Phase.WORK, False, self.sound_id)

    def update(self, phase: Phase, running: bool) -> Optional[PlaybackDirective]:
        """Recompute for a timer state; returns the directive only if it changed."""
        directive = compute_directive(phase, running, self.sound_id)
        if directive == replace(self.current, rewind=False):
            return None
        self.current = directive
        return directive

    def select_sound(self, sound_id: str, phase: Phase, running: bool) -> PlaybackDirective:
        """
        Switching while the clip plays restarts the new clip from the top;
        otherwise only the selection is stored.
        """
        self.sound_id = _check_sound(sound_id)
        directive = compute_directive(phase, running, self.sound_id)
        if directive.should_play:
            directive = replace(directive, rewind=True)
        self.current = directive
        return directive

    def rewind(self) -> PlaybackDirective:
        """Stop and seek back to the start (timer reset)."""
        self.current = PlaybackDirective(sound_id=self.sound_id, should_play=False, rewind=True)
        return self.current

    def release(self) -> PlaybackDirective:
        self.current = PlaybackDirective(sound_id=self.sound_id, should_play=False)
        return self.current

    def expired_cue(self) -> CueDirective:
        return CueDirective()


def _check_sound(sound_id: str) -> str:
    if sound_id not in BREAK_SOUNDS:
        raise ValidationFailure(
            f"Unknown break sound {sound_id!r}; choose one of {', '.join(BREAK_SOUNDS)}"
        )
    return sound_id
