"""Incremental build engine.

A build is described by *keys*. The engine asks a delegate for the *rule*
behind each key; the rule creates a *task* that computes the key's value.
Tasks declare the other keys they need as numbered inputs and the engine
resolves those first, so build order follows from what each task asks for.

Task protocol, driven entirely from the engine's coordinator thread:

1. ``start(engine)``: the task may call ``engine.needs_input(key, input_id)``.
2. ``provide_value(engine, input_id, value)``: called once per requested
   input as it becomes available, in completion order. More inputs may be
   requested here; they join the current round.
3. ``inputs_available(engine)``: called once every input of the round has
   been delivered. The task then requests more inputs (a new round), calls
   ``engine.complete(value)``, or hands blocking work to the worker pool
   with ``engine.run_in_background(fn)``, whose return value completes it.

Values are strings. Completed values are written to the result store and,
on a later build, reused without creating a task when the rule's
``is_result_valid`` accepts the stored value.

Failures never escape a worker thread. They are reported to the
coordinator, which fails every task waiting on the failed key; the
requested key's failure is raised from ``build`` as TaskFailedError once
background work has drained.
"""

import functools
import os
import queue
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from ..cli_logger import logger
from ..errors import CycleError, EngineError, TaskFailedError, TaskProtocolError

KEY_SEPARATOR = " | "


@dataclass(frozen=True)
class Key:
    """A rule kind plus an ordered parameter list, e.g. ``<BA | /pkg | iphoneos | arm64 | /src>``."""

    kind: str
    parameters: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "parameters", tuple(self.parameters))
        if not self.kind:
            raise ValueError("A key needs a rule kind")
        for token in (self.kind,) + self.parameters:
            if not isinstance(token, str) or KEY_SEPARATOR in token:
                raise ValueError(f"Invalid key token: {token!r}")

    def __str__(self):
        return "<" + KEY_SEPARATOR.join((self.kind,) + self.parameters) + ">"

    @classmethod
    def from_string(cls, value):
        if len(value) < 2 or not (value.startswith("<") and value.endswith(">")):
            raise ValueError(f"Not a build key: {value!r}")
        kind, *parameters = value[1:-1].split(KEY_SEPARATOR)
        return cls(kind, tuple(parameters))


class Rule:
    """Interprets one key: creates its task and judges stored values."""

    def create_task(self):
        raise NotImplementedError

    def is_result_valid(self, prior_value):
        return False


class Task:
    def start(self, engine):
        pass

    def provide_value(self, engine, input_id, value):
        pass

    def inputs_available(self, engine):
        raise NotImplementedError


class TaskState(Enum):
    CREATED = "created"
    STARTED = "started"
    AWAITING_INPUTS = "awaiting-inputs"
    INPUTS_AVAILABLE = "inputs-available"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


class _Node:
    def __init__(self, key):
        self.key = key
        self.rule = None
        self.task = None
        self.state = TaskState.CREATED
        self.value = None
        self.error = None
        # input_id -> key, for inputs requested but not yet delivered
        self.pending = {}
        self.requested_ids = set()
        self.waiters = []
        self.round_open = False

    @property
    def done(self):
        return self.state in (TaskState.COMPLETE, TaskState.FAILED)


class TaskEngine:
    """The view of the engine handed to a task's callbacks."""

    def __init__(self, engine, node):
        self._engine = engine
        self._node = node

    @property
    def key(self):
        return self._node.key

    def needs_input(self, key, input_id):
        self._engine._needs_input(self._node, key, input_id)

    def complete(self, value):
        self._engine._task_complete(self._node, value)

    def fail(self, error):
        self._engine._fail(self._node, error)

    def run_in_background(self, fn):
        self._engine._run_in_background(self._node, fn)


class BuildEngine:
    """Evaluates keys through rules from ``delegate.lookup_rule(key)``."""

    def __init__(self, delegate, store=None, max_workers=None):
        self.delegate = delegate
        self.store = store
        self.max_workers = max_workers or os.cpu_count() or 1
        self._building = False

    def build(self, key):
        """Produce the value of ``key``, evaluating everything it depends on."""
        if self._building:
            raise EngineError("The build engine is already running a build")
        self._building = True
        self._nodes = {}
        self._events = deque()
        self._completions = queue.Queue()
        self._in_flight = 0
        self._aborting = False
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ibuild") as executor:
                self._executor = executor
                root = self._demand(key)
                try:
                    self._run_until(root)
                finally:
                    self._aborting = True
                    self._drain()
        finally:
            self._building = False
            self._executor = None

        if root.state is TaskState.FAILED:
            if isinstance(root.error, TaskFailedError):
                raise root.error
            raise TaskFailedError(key, root.error) from root.error
        return root.value

    # -- scheduling --------------------------------------------------------

    def _run_until(self, root):
        while not root.done:
            if self._events:
                event = self._events.popleft()
                event()
                continue
            if self._in_flight == 0:
                waiting = [str(node.key) for node in self._nodes.values() if not node.done]
                raise TaskProtocolError(f"Build stalled with unfinished tasks: {', '.join(waiting)}")
            self._handle_completion(self._completions.get())

    def _drain(self):
        while self._in_flight:
            self._handle_completion(self._completions.get())

    def _handle_completion(self, completion):
        node, succeeded, payload = completion
        self._in_flight -= 1
        if node.done:
            return
        if succeeded:
            self._complete(node, payload)
        else:
            self._fail(node, payload)

    def _demand(self, key, requester=None, input_id=None):
        node = self._nodes.get(key)
        if node is None:
            node = _Node(key)
            self._nodes[key] = node
            if requester is not None:
                node.waiters.append((requester, input_id))
            self._events.append(functools.partial(self._schedule, node))
            return node

        if requester is None:
            return node
        if node.state is TaskState.COMPLETE:
            self._events.append(functools.partial(self._deliver, requester, input_id, node))
        elif node.state is TaskState.FAILED:
            self._events.append(functools.partial(self._fail, requester, node.error))
        else:
            if self._waits_on(node, requester):
                raise CycleError(f"Cycle detected: {requester.key} depends on itself through {key}")
            node.waiters.append((requester, input_id))
        return node

    def _waits_on(self, node, target):
        seen = set()
        stack = [node]
        while stack:
            current = stack.pop()
            if current is target:
                return True
            if current.key in seen:
                continue
            seen.add(current.key)
            stack.extend(self._nodes[key] for key in current.pending.values() if key in self._nodes)
        return False

    def _schedule(self, node):
        if node.done:
            return
        try:
            node.rule = self.delegate.lookup_rule(node.key)
            prior = self.store.get(str(node.key)) if self.store is not None else None
            if prior is not None and node.rule.is_result_valid(prior):
                logger.debug(f"Reusing cached result for {node.key}")
                self._complete(node, prior, persist=False)
                return
            node.task = node.rule.create_task()
        except Exception as e:
            self._fail(node, e)
            return

        node.state = TaskState.STARTED
        node.round_open = True
        self._invoke(node, node.task.start)

    def _invoke(self, node, callback, *args):
        try:
            callback(TaskEngine(self, node), *args)
        except Exception as e:
            self._fail(node, e)
            return
        self._advance(node)

    def _advance(self, node):
        if node.done or node.state is TaskState.RUNNING:
            return
        if node.pending:
            node.state = TaskState.AWAITING_INPUTS
            return
        if node.round_open:
            node.round_open = False
            node.state = TaskState.INPUTS_AVAILABLE
            self._invoke(node, node.task.inputs_available)
            return
        self._fail(node, TaskProtocolError(
            f"Task for {node.key} neither completed nor requested more inputs"
        ))

    def _deliver(self, node, input_id, source):
        if node.done or input_id not in node.pending:
            return
        del node.pending[input_id]
        self._invoke(node, node.task.provide_value, input_id, source.value)

    # -- task callbacks ----------------------------------------------------

    def _needs_input(self, node, key, input_id):
        if node.done or node.state is TaskState.RUNNING:
            raise TaskProtocolError(f"Task for {node.key} requested {key} after it finished")
        if input_id in node.requested_ids:
            raise TaskProtocolError(f"Task for {node.key} requested input id {input_id} twice")
        node.requested_ids.add(input_id)
        node.pending[input_id] = key
        node.round_open = True
        self._demand(key, node, input_id)

    def _task_complete(self, node, value):
        if node.done or node.state is TaskState.RUNNING:
            raise TaskProtocolError(f"Task for {node.key} completed twice")
        if node.pending:
            raise TaskProtocolError(f"Task for {node.key} completed with inputs outstanding")
        self._complete(node, value)

    def _run_in_background(self, node, fn):
        if node.done or node.state is TaskState.RUNNING:
            raise TaskProtocolError(f"Task for {node.key} is already running")
        if node.pending:
            raise TaskProtocolError(f"Task for {node.key} started work with inputs outstanding")
        node.state = TaskState.RUNNING
        self._in_flight += 1
        completions = self._completions

        def job():
            try:
                value = fn()
            except BaseException as e:
                completions.put((node, False, e))
            else:
                completions.put((node, True, value))

        self._executor.submit(job)

    # -- results -----------------------------------------------------------

    def _complete(self, node, value, persist=True):
        if not isinstance(value, str):
            self._fail(node, TaskProtocolError(f"Task for {node.key} produced a non-string value: {value!r}"))
            return
        node.value = value
        node.state = TaskState.COMPLETE
        if persist and self.store is not None:
            self.store.set(str(node.key), value)
        waiters, node.waiters = node.waiters, []
        if self._aborting:
            return
        for waiter, input_id in waiters:
            self._events.append(functools.partial(self._deliver, waiter, input_id, node))

    def _fail(self, node, error):
        if node.done:
            logger.error(f"Ignoring failure reported after {node.key} finished: {error}")
            return
        if not isinstance(error, TaskFailedError):
            logger.debug(f"Task for {node.key} failed: {error}")
            error = TaskFailedError(node.key, error)
        node.state = TaskState.FAILED
        node.error = error
        waiters, node.waiters = node.waiters, []
        for waiter, _ in waiters:
            self._events.append(functools.partial(self._fail, waiter, error))
