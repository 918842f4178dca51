__all__ = [
	"DebounceScheduler",
	"Deadline",
	"DeadlineStore",
	"ReusableTimer",
	"TimerState",
	"DirectoryWatcher",
	"WatchConfig",
]

from .config import WatchConfig
from .deadlines import Deadline, DeadlineStore
from .scheduler import DebounceScheduler
from .timer import ReusableTimer, TimerState
from .watch import DirectoryWatcher
