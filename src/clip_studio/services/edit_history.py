"""Linear undo/redo over a clip's trim window."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from clip_studio.config import settings
from clip_studio.domain.enums import Quality
from clip_studio.domain.models import Clip, HistoryAction, TrimEdit, TrimState
from clip_studio.errors import ValidationError
from clip_studio.logging import get_logger
from clip_studio.services.autosave import DebouncedWriter

logger = get_logger(__name__)


@dataclass(frozen=True)
class HistoryResult:
    """Outcome of an undo or redo."""

    applied: bool
    description: str | None = None


def format_time(ms: int) -> str:
    """Render milliseconds as ``m:ss``, or ``m:ss.d`` when not on a whole second."""
    minutes, rem = divmod(ms, 60_000)
    seconds, millis = divmod(rem, 1_000)
    if millis:
        return f"{minutes}:{seconds:02d}.{millis // 100}"
    return f"{minutes}:{seconds:02d}"


class ClipEditHistory:
    """Append-only log of trim edits with a movable cursor.

    ``index`` is -1 when the live state is the baseline (the clip as loaded),
    otherwise it points at the entry whose state is live. Applying an edit
    after an undo discards everything beyond the cursor.

    The live state always equals ``baseline`` when ``index == -1`` and
    ``history[index].state`` otherwise; each entry stores the full resulting
    state, so replaying ``history[0..index]`` lands on the same value.
    """

    def __init__(
        self,
        clip: Clip,
        *,
        max_duration_ms: int | None = None,
        min_duration_ms: int | None = None,
        writer: DebouncedWriter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.clip = clip
        self.max_duration_ms = (
            max_duration_ms if max_duration_ms is not None else settings.manual_trim_max_ms
        )
        self.min_duration_ms = (
            min_duration_ms if min_duration_ms is not None else settings.min_clip_ms
        )
        self.writer = writer
        self._clock = clock or (lambda: datetime.now(UTC))

        self.baseline = TrimState(clip.start_ms, clip.end_ms, clip.quality)
        self._state = self.baseline
        self._history: list[HistoryAction] = []
        self._index = -1

    @property
    def state(self) -> TrimState:
        return self._state

    @property
    def history(self) -> tuple[HistoryAction, ...]:
        return tuple(self._history)

    @property
    def index(self) -> int:
        return self._index

    @property
    def can_undo(self) -> bool:
        return self._index >= 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._history) - 1

    @property
    def undo_description(self) -> str | None:
        return self._history[self._index].description if self.can_undo else None

    @property
    def redo_description(self) -> str | None:
        return self._history[self._index + 1].description if self.can_redo else None

    def validate(self, state: TrimState) -> None:
        """Raise ValidationError unless ``state`` is an acceptable trim window."""
        if state.start_ms < 0:
            raise ValidationError("Start time cannot be negative")
        if state.start_ms >= state.end_ms:
            raise ValidationError("Clip duration must be greater than 0")
        if state.duration_ms < self.min_duration_ms:
            raise ValidationError(
                f"Clip must be at least {self.min_duration_ms / 1000:g} seconds long"
            )
        if state.duration_ms > self.max_duration_ms:
            raise ValidationError(
                f"Clip duration cannot exceed {self.max_duration_ms / 1000:g} seconds"
            )

    def apply(self, edit: TrimEdit) -> HistoryAction:
        """Validate and record an edit, then make it live."""
        new_state = edit.apply_to(self._state)
        self.validate(new_state)
        return self._record(new_state, edit.description or self._describe(new_state))

    def undo(self) -> HistoryResult:
        if not self.can_undo:
            return HistoryResult(applied=False)
        undone = self._history[self._index]
        self._index -= 1
        self._set_state(self._history[self._index].state if self._index >= 0 else self.baseline)
        logger.debug("trim_undo", clip_id=self.clip.id, index=self._index)
        return HistoryResult(applied=True, description=undone.description)

    def redo(self) -> HistoryResult:
        if not self.can_redo:
            return HistoryResult(applied=False)
        self._index += 1
        action = self._history[self._index]
        self._set_state(action.state)
        logger.debug("trim_redo", clip_id=self.clip.id, index=self._index)
        return HistoryResult(applied=True, description=action.description)

    def reset(self) -> HistoryAction:
        """Return to the loaded window as a new, undoable entry."""
        return self._record(self.baseline, "Reset to original")

    def set_start(self, start_ms: int) -> HistoryAction:
        start_ms = self._snap(start_ms)
        return self.apply(
            TrimEdit(start_ms=start_ms, description=f"Set start time to {format_time(start_ms)}")
        )

    def set_end(self, end_ms: int) -> HistoryAction:
        end_ms = self._snap(end_ms)
        return self.apply(
            TrimEdit(end_ms=end_ms, description=f"Set end time to {format_time(end_ms)}")
        )

    def nudge_start(self, steps: int = 1) -> HistoryAction:
        """Move the start handle by whole nudge steps, keeping the minimum length."""
        start = self._state.start_ms + steps * settings.nudge_step_ms
        start = max(0, min(start, self._state.end_ms - self.min_duration_ms))
        return self.apply(
            TrimEdit(start_ms=start, description=f"Nudged start time to {format_time(start)}")
        )

    def nudge_end(self, steps: int = 1) -> HistoryAction:
        """Move the end handle by whole nudge steps, keeping the length in bounds."""
        end = self._state.end_ms + steps * settings.nudge_step_ms
        end = max(self._state.start_ms + self.min_duration_ms, end)
        end = min(end, self._state.start_ms + self.max_duration_ms)
        return self.apply(
            TrimEdit(end_ms=end, description=f"Nudged end time to {format_time(end)}")
        )

    def set_quality(self, quality: Quality) -> HistoryAction:
        return self.apply(TrimEdit(quality=quality, description=f"Set quality to {quality}"))

    def _record(self, state: TrimState, description: str) -> HistoryAction:
        if self._index < len(self._history) - 1:
            del self._history[self._index + 1 :]
        action = HistoryAction(
            start_ms=state.start_ms,
            end_ms=state.end_ms,
            quality=state.quality,
            description=description,
            timestamp=self._clock(),
        )
        self._history.append(action)
        self._index = len(self._history) - 1
        self._set_state(state)
        logger.debug("trim_edit_applied", clip_id=self.clip.id, description=description)
        return action

    def _set_state(self, state: TrimState) -> None:
        self._state = state
        self.clip.start_ms = state.start_ms
        self.clip.end_ms = state.end_ms
        self.clip.quality = state.quality
        if self.writer is not None:
            self.writer.schedule(
                {
                    "start_ms": state.start_ms,
                    "end_ms": state.end_ms,
                    "quality_original": state.quality == Quality.ORIGINAL,
                }
            )

    @staticmethod
    def _snap(ms: int) -> int:
        step = settings.nudge_step_ms
        return int(round(ms / step)) * step

    @staticmethod
    def _describe(state: TrimState) -> str:
        return f"Trim to {format_time(state.start_ms)}-{format_time(state.end_ms)}"
