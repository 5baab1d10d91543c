from .core import BuildEngine, Key, Rule, Task, TaskEngine, TaskState
from .result_store import ResultStore
from .build_system import BuildSystem
