"""Progress tracking for sync passes.

A pass reports ``(current, total, phase)`` updates at coarse granularity: at
most once every ``step`` items (50 by default, or 5% of the total when that is
larger) and always on completion.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeElapsedColumn

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_STEP = 50
MAX_UPDATES_PER_PHASE = 20


class ProgressPhase(str, Enum):
    """Phases of a sync pass."""

    INITIALIZING = "initializing"
    TRIGGERING_SCAN = "triggering_scan"
    DETECTING_DELETIONS = "detecting_deletions"
    FETCHING_INDEX = "fetching_index"
    PERSISTING = "persisting"
    SCANNING_ANNOTATIONS = "scanning_annotations"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressUpdate:
    """One progress notification."""

    phase: ProgressPhase
    current: int
    total: int
    message: str = ""
    elapsed_time: float = 0.0

    @property
    def percentage(self) -> float:
        """Completion of the phase in percent (0 for an unknown total)."""
        if self.total <= 0:
            return 0.0
        return min(self.current, self.total) * 100.0 / self.total

    @property
    def is_complete(self) -> bool:
        """Whether the phase has reached its total."""
        return self.current >= self.total

    def as_tuple(self) -> Tuple[int, int, ProgressPhase]:
        """Return the ``(current, total, phase)`` triple."""
        return (self.current, self.total, self.phase)

    def __str__(self) -> str:
        text = f"[{self.phase.value}] {self.current}/{self.total} ({self.percentage:.1f}%)"
        return f"{text} - {self.message}" if self.message else text


ProgressCallback = Callable[[ProgressUpdate], None]


@dataclass
class _PhaseState:
    phase: ProgressPhase
    total: int
    started_at: float
    current: int = 0
    last_reported: int = 0

    def step(self, minimum: int) -> int:
        return max(minimum, self.total // MAX_UPDATES_PER_PHASE)


class ProgressTracker:
    """Tracks one phase at a time and throttles notifications by item count."""

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        step: int = DEFAULT_PROGRESS_STEP,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize progress tracker.

        Args:
            callback: Receives progress updates; exceptions it raises are logged
            step: Minimum number of items between two updates
            clock: Monotonic time source in seconds
        """
        self.callback = callback
        self.step = max(1, step)
        self._clock = clock
        self._started_at: Optional[float] = None
        self._state: Optional[_PhaseState] = None
        self._durations: List[Tuple[ProgressPhase, float]] = []

    @property
    def current_phase(self) -> Optional[ProgressPhase]:
        """Phase currently being tracked."""
        return self._state.phase if self._state else None

    def start(self, phase: ProgressPhase, total: int, message: str = "") -> None:
        """Begin a phase of ``total`` items and report it at 0."""
        now = self._clock()
        if self._started_at is None:
            self._started_at = now
        self._state = _PhaseState(phase=phase, total=total, started_at=now)
        self._emit(message)

    def update(self, current: Optional[int] = None, message: str = "") -> None:
        """Advance the current phase.

        Args:
            current: Items done so far (increments by one if None)
            message: Optional progress message
        """
        state = self._state
        if state is None:
            return
        state.current = state.current + 1 if current is None else current

        finished = state.total > 0 and state.current >= state.total
        if finished or state.current - state.last_reported >= state.step(self.step):
            self._emit(message)

    def complete(self, message: str = "") -> None:
        """Finish the current phase and record its duration."""
        state = self._state
        if state is None:
            return
        self._durations.append((state.phase, self._clock() - state.started_at))
        state.current = state.total
        self._emit(message)

    def error(self, message: str) -> None:
        """Report a failure of the current phase."""
        if self._state is not None:
            self._emit(message, phase=ProgressPhase.ERROR)

    def _emit(self, message: str, phase: Optional[ProgressPhase] = None) -> None:
        state = self._state
        if state is None:
            return
        state.last_reported = state.current
        if self.callback is None:
            return

        update = ProgressUpdate(
            phase=phase or state.phase,
            current=state.current,
            total=state.total,
            message=message,
            elapsed_time=self._clock() - (self._started_at or state.started_at),
        )
        try:
            self.callback(update)
        except Exception as e:
            logger.error("Error in progress callback: %s", e)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of progress tracking.

        Returns:
            Dictionary with total time, per-phase durations, current phase
            and ``current/total`` of the current phase
        """
        state = self._state
        return {
            "total_time": (
                self._clock() - self._started_at if self._started_at is not None else 0
            ),
            "phase_history": {phase.value: seconds for phase, seconds in self._durations},
            "current_phase": state.phase.value if state else None,
            "progress": f"{state.current}/{state.total}" if state else "0/0",
        }


class ConsoleProgressReporter:
    """Prints a rule per phase and one line per update."""

    def __init__(self, verbose: bool = True, console: Optional[Console] = None):
        """Initialize console reporter.

        Args:
            verbose: Print every update, or only phase completions
            console: Rich console to print to
        """
        self.verbose = verbose
        self.console = console or Console()
        self._last_phase: Optional[ProgressPhase] = None

    def __call__(self, update: ProgressUpdate) -> None:
        if update.phase != self._last_phase:
            self.console.rule(f"[bold]{update.phase.value.upper()}")
            self._last_phase = update.phase

        if self.verbose or update.is_complete:
            self.console.print(f"  {update}", markup=False)


class RichProgressReporter:
    """Renders one rich progress bar per phase."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: Dict[ProgressPhase, TaskID] = {}
        self._started = False

    def __call__(self, update: ProgressUpdate) -> None:
        if not self._started:
            self._progress.start()
            self._started = True

        total = update.total or None
        task_id = self._tasks.get(update.phase)
        if task_id is None:
            task_id = self._progress.add_task(update.phase.value, total=total)
            self._tasks[update.phase] = task_id
        self._progress.update(task_id, completed=update.current, total=total)

    def close(self) -> None:
        """Stop rendering."""
        if self._started:
            self._progress.stop()
            self._started = False
