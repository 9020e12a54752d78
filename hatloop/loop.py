"""
HATLOOP Loop — The Brainstem

Deterministic and deliberately dumb. One hat at a time:

  topic → hat → prompt → backend → output → extract_event → topic ...

until the agent declares LOOP_COMPLETE or the iteration budget runs out.

Events injected from outside (`hatloop emit`) land in events.jsonl and are
picked up between iterations; they route exactly like extracted events.
A stop request is honoured between iterations, never inside one.
"""

from __future__ import annotations

import shlex
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from hatloop.backends import Backend, BackendResult, BackendSelector
from hatloop.errors import MaxIterationsReachedError
from hatloop.events import LOOP_COMPLETE, Event, EventBus, append_jsonl, extract_event, load_jsonl
from hatloop.hats import HatDefinition, HatRegistry, build_hat_prompt, is_authorized
from hatloop.sandbox import ExecuteOptions, SandboxAdapter


class LoopResult(BaseModel):
    success: bool
    iterations: int
    last_output: str = ""
    last_topic: str | None = None
    aborted: bool = False


class SandboxedBackend:
    """Runs a backend's agent CLI inside a sandbox instead of on the host."""

    def __init__(self, backend: Backend, sandbox: SandboxAdapter, options: ExecuteOptions | None = None):
        self.backend = backend
        self.sandbox = sandbox
        self.options = options or ExecuteOptions()
        self.name = f"{backend.name}@{sandbox.name}"

    def command_line(self, prompt: str) -> str:
        line = shlex.join([self.backend.command, *self.backend.build_args(prompt)])
        stdin = self.backend.stdin_for(prompt)
        if stdin is not None:
            line = f"printf '%s' {shlex.quote(stdin)} | {line}"
        return line

    def execute_options(self) -> ExecuteOptions:
        """The backend's workdir, timeout and output hook fill whatever the options leave unset."""
        options = self.options
        update = {}
        if options.cwd is None and self.backend.workdir:
            update["cwd"] = self.backend.workdir
        if options.timeout is None and self.backend.timeout:
            update["timeout"] = self.backend.timeout
        if options.on_output is None and self.backend.on_output is not None:
            update["on_output"] = self.backend.on_output
        return options.model_copy(update=update) if update else options

    def execute(self, prompt: str) -> BackendResult:
        result = self.sandbox.execute(self.command_line(prompt), self.execute_options())
        output = result.stdout
        if result.exit_code != 0 and not output.strip():
            output = result.stderr
        return BackendResult(output=output, exit_code=result.exit_code)


class LoopEngine:
    def __init__(
        self,
        registry: HatRegistry,
        backends: BackendSelector,
        bus: EventBus | None = None,
        sandbox: SandboxAdapter | None = None,
        max_iterations: int = 100,
        completion_promise: str = LOOP_COMPLETE,
        start_topic: str = "task.start",
        events_path: Path | None = None,
    ):
        self.registry = registry
        self.backends = backends
        self.bus = bus or EventBus()
        self.sandbox = sandbox
        self.max_iterations = max_iterations
        self.completion_promise = completion_promise
        self.start_topic = start_topic
        self.events_path = events_path
        self._stop_requested = False
        self._known_event_ids: set[str] = set()

    def request_stop(self) -> None:
        """Ask the loop to stop before its next iteration."""
        self._stop_requested = True

    def run(self, prompt: str) -> LoopResult:
        try:
            return self._run(prompt)
        finally:
            if self.sandbox is not None:
                self.sandbox.cleanup()

    # --- internals ---

    def _run(self, prompt: str) -> LoopResult:
        if self.events_path is not None:
            self._known_event_ids = {e.event_id for e in load_jsonl(self.events_path)}

        topic = self._publish(self.start_topic, None, {"max_iterations": self.max_iterations}).topic
        last_output = ""

        for iteration in range(1, self.max_iterations + 1):
            if self._stop_requested:
                logger.info(f"[LOOP] Stop requested before iteration {iteration}")
                return LoopResult(
                    success=False,
                    iterations=iteration - 1,
                    last_output=last_output,
                    last_topic=topic,
                    aborted=True,
                )

            topic = self._consume_external_events() or topic

            hat = self._select_hat(topic)
            full_prompt = self._build_prompt(hat, prompt, topic, iteration)

            logger.info(f"[LOOP] Iteration {iteration}/{self.max_iterations} — topic={topic} hat={hat.id if hat else '-'}")
            result = self._backend_for(hat).execute(full_prompt)
            last_output = result.output

            published = extract_event(result.output, self.completion_promise)
            if published is None:
                logger.warning(f"[LOOP] No event found in output (exit {result.exit_code}); repeating '{topic}'")
                continue

            if hat is not None and published != LOOP_COMPLETE and not is_authorized(hat, published):
                logger.warning(f"[LOOP] Hat {hat.id} published undeclared event '{published}'")

            topic = self._publish(
                published,
                hat.id if hat else None,
                {"iteration": iteration, "exit_code": result.exit_code},
            ).topic

            if published == LOOP_COMPLETE:
                logger.info(f"[LOOP] Complete after {iteration} iteration(s)")
                return LoopResult(
                    success=True,
                    iterations=iteration,
                    last_output=last_output,
                    last_topic=topic,
                )

        self._publish("loop.max_iterations", None, {"max_iterations": self.max_iterations})
        raise MaxIterationsReachedError(self.max_iterations, self.max_iterations)

    def _select_hat(self, topic: str) -> HatDefinition | None:
        if not len(self.registry):
            return None

        hat = self.registry.find_by_trigger(topic)
        if hat is None:
            hat = self.registry.active
            logger.warning(
                f"[LOOP] No hat responds to '{topic}'; "
                f"{'keeping ' + hat.id if hat else 'running without a hat'}"
            )
        else:
            self.registry.set_active(hat.id)
        return hat

    def _build_prompt(self, hat: HatDefinition | None, prompt: str, topic: str, iteration: int) -> str:
        context = f"{prompt}\n\n---\nIteration: {iteration}\nLast event: {topic}\n"
        if hat is None:
            return context + f"\nWhen the task is fully complete, output `{self.completion_promise}`.\n"
        return build_hat_prompt(hat, context)

    def _backend_for(self, hat: HatDefinition | None) -> Backend | SandboxedBackend:
        backend = self.backends.select(hat)
        if self.sandbox is None:
            return backend
        return SandboxedBackend(backend, self.sandbox)

    def _publish(self, topic: str, hat_id: str | None, payload: dict) -> Event:
        event = self.bus.emit(topic, hat_id, payload)
        if self.events_path is not None:
            append_jsonl(self.events_path, event)
            self._known_event_ids.add(event.event_id)
        return event

    def _consume_external_events(self) -> str | None:
        """Record events appended to events.jsonl by someone else; the newest one routes next."""
        if self.events_path is None:
            return None

        events = load_jsonl(self.events_path)
        fresh = [e for e in events if e.event_id not in self._known_event_ids]
        self._known_event_ids.update(e.event_id for e in fresh)

        for event in fresh:
            logger.info(f"[LOOP] External event: {event.topic}")
            self.bus.record(event)
        return fresh[-1].topic if fresh else None
