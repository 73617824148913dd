# cycle_orchestrator.py
# Homeostat - CycleOrchestrator
# Owns the DriveState for one session and runs the agent's life:
# adaptive ticks, user turns, autonomous speech, goal pursuit, sleep.
#
# Everything that changes the state goes through dispatch() -> reduce().
# Async work (generator, memory) gets a snapshot by value and comes back
# as events; it never writes the state directly.

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Set, Union

from homeostat.brainstem.clock import adaptive_clock
from homeostat.config import KernelConfig, DEFAULT_CONFIG
from homeostat.cortex.goals import goal_formation
from homeostat.cortex.goals.goal_formation import GoalContext
from homeostat.cortex.persona import success_signal
from homeostat.cortex.persona.trait_drift import SignalLog, TraitSignal, apply_homeostasis
from homeostat.cortex.speech.speech_gate import (
    ExpressionContext,
    GateDecision,
    SpeechCandidate,
    SpeechGate,
    should_initiate_thought,
)
from homeostat.cortex.thinking.generator import GenerationRequest, Generator, GeneratorResult
from homeostat.errors import GeneratorTimeoutError, RetryableError
from homeostat.hippocampus.memory.memory_store import InMemoryStore, MemoryEntry, MemoryStore
from homeostat.hippocampus.state.snapshot_store import Snapshot
from homeostat.kernel.events import Event, EventType, Output, OutputType, ReducerResult
from homeostat.kernel.reducer import reduce
from homeostat.kernel.state import DriveState, Goal, create_initial_state
from homeostat.orchestrator.throttle import DedupeSet, RateLimiter


logger = logging.getLogger(__name__)
kernel_logger = logging.getLogger("homeostat.kernel")

MAX_GOAL_ATTEMPTS = 3

Runner = Callable[[Dict[str, Any]], None]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class OrchestratorContext:
    """Per-session mutable bookkeeping that is not part of the DriveState."""

    rate_limiter: RateLimiter
    dedupe: DedupeSet
    signal_log: SignalLog = field(default_factory=SignalLog)
    processing: bool = False
    user_turns: int = 0
    last_response: str = ""
    goal_attempts: int = 0
    published: Deque[Dict[str, Any]] = field(default_factory=lambda: deque(maxlen=100))


class CycleOrchestrator:
    """
    Main loop for one agent session.

    Autonomous cycle, per tick:
        1. Tick event (metabolism, social decay, sleep/wake, next interval)
        2. Skip when asleep, autonomy is off or the rate limiter says no
        3. Active goal -> pursue it (GOAL_EXECUTED)
           no goal     -> maybe form one (GOAL_FORMED) and pursue it
           otherwise   -> free volition (AUTONOMOUS)
        4. Generator call under a watchdog, on a snapshot
        5. SpeechGate decides say / shorten / mute
        6. Outcome goes back in as AGENT_SPOKE / NEURO_UPDATE / THOUGHT_GENERATED

    User turn:
        USER_INPUT -> recall memories -> generator -> gate (USER_REPLY) -> AGENT_SPOKE
    """

    def __init__(
        self,
        generator: Generator,
        memory: Optional[MemoryStore] = None,
        config: Optional[KernelConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], int]] = None,
        state: Optional[DriveState] = None,
        shadow_mode: bool = False,
        log_runner: Optional[Runner] = None,
        publish_runner: Optional[Runner] = None,
        consolidation_runner: Optional[Runner] = None,
        wake_runner: Optional[Runner] = None,
        speech_runner: Optional[Callable[[str, ExpressionContext], None]] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self.rng = rng or random.Random()
        self.clock = clock or wall_clock_ms
        self.generator = generator
        self.memory = memory or InMemoryStore()
        self.gate = SpeechGate(self.config, self.rng, shadow_mode)

        self.ctx = OrchestratorContext(
            rate_limiter=RateLimiter(self.config.orchestrator.autonomy_ops_per_minute),
            dedupe=DedupeSet(),
        )
        self._state = state or create_initial_state(self.clock())

        self._log_runner = log_runner or self._default_log
        self._publish_runner = publish_runner or self._default_publish
        self._consolidation_runner = consolidation_runner or self.consolidate
        self._wake_runner = wake_runner or self._default_wake
        self._speech_runner = speech_runner or self._default_speech

        self._queue: Deque[Event] = deque()
        self._dispatching = False
        self._next_delay_ms: Optional[int] = None
        self._tick_requested: Optional[asyncio.Event] = None
        self._running = False
        self._background: Set[asyncio.Task] = set()
        self._generation_lock: Optional[asyncio.Lock] = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> DriveState:
        return self._state

    @property
    def next_delay_ms(self) -> Optional[int]:
        return self._next_delay_ms

    def snapshot(self) -> Snapshot:
        return Snapshot(state=self._state, signal_log=self.ctx.signal_log)

    def hydrate(self, snapshot: Union[Snapshot, Mapping[str, Any]]) -> DriveState:
        """
        Restore a persisted session.
        A corrupted mapping raises SnapshotCorruptedError before anything changes.
        """
        if isinstance(snapshot, Snapshot):
            data = snapshot.state.to_dict()
            self.ctx.signal_log = snapshot.signal_log
        else:
            data = dict(snapshot)
            DriveState.from_dict(data)
        self.dispatch(EventType.HYDRATE, {"state": data})
        return self._state

    def record_signal(self, signal: TraitSignal) -> None:
        self.ctx.signal_log = self.ctx.signal_log.add(signal, self.config.traits)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event_type: Union[EventType, str], payload: Optional[Mapping[str, Any]] = None) -> DriveState:
        """
        Queue one event and, unless a dispatch is already running, drain the
        queue. Events raised by output runners are handled after the current
        event's outputs, one at a time.
        """
        self._queue.append(Event(event_type, self.clock(), dict(payload or {})))
        if self._dispatching:
            return self._state

        self._dispatching = True
        try:
            while self._queue:
                event = self._queue.popleft()
                result = reduce(self._state, event, self.config)
                self._state = result.next_state
                self._execute(result)
        finally:
            self._dispatching = False
        return self._state

    def _execute(self, result: ReducerResult) -> None:
        for output in result.outputs:
            self._run_output(output)

    def _run_output(self, output: Output) -> None:
        payload = output.payload
        if output.type == OutputType.LOG:
            self._log_runner(payload)
        elif output.type == OutputType.PUBLISH:
            self._publish_runner(payload)
        elif output.type == OutputType.SCHEDULE_NEXT_TICK:
            self._next_delay_ms = int(payload["delay_ms"])
            if self._tick_requested is not None:
                self._tick_requested.set()
        elif output.type == OutputType.TRIGGER_CONSOLIDATION:
            self._consolidation_runner(payload)
        elif output.type == OutputType.TRIGGER_WAKE:
            self._wake_runner(payload)
        elif output.type == OutputType.MAYBE_REM_CYCLE:
            if self.rng.random() < payload.get("probability", 0.0):
                self._rem_cycle(payload)
        elif output.type == OutputType.MAYBE_DREAM_CONSOLIDATION:
            if self.rng.random() < payload.get("probability", 0.0) and not self._state.has_consolidated_this_sleep:
                self._consolidation_runner({"reason": "DREAM"})

    # ------------------------------------------------------------------
    # Default runners
    # ------------------------------------------------------------------

    def _default_log(self, payload: Dict[str, Any]) -> None:
        extra = {k: v for k, v in payload.items() if k != "message"}
        if extra:
            kernel_logger.info("%s %s", payload.get("message", ""), extra)
        else:
            kernel_logger.info("%s", payload.get("message", ""))

    def _default_publish(self, payload: Dict[str, Any]) -> None:
        self.ctx.published.append(payload)
        logger.debug("[%s] %s %s", payload.get("source"), payload.get("type"), payload.get("payload"))

    def _default_wake(self, payload: Dict[str, Any]) -> None:
        # a new waking period starts with fresh throttles
        self.ctx.dedupe.reset()
        self.ctx.rate_limiter.reset()
        logger.info("Awake (energy %.0f)", self._state.metabolic.energy)

    def _default_speech(self, text: str, context: ExpressionContext) -> None:
        logger.info("Agent (%s): %s", context.value, text)

    def _rem_cycle(self, payload: Dict[str, Any]) -> None:
        recent = [t.text for t in self._state.conversation[-3:]]
        self._publish_runner({
            "source": "HIPPOCAMPUS",
            "type": "DREAM_HINT",
            "payload": {"fragments": recent, "energy": payload.get("energy")},
            "priority": 0.1,
        })

    def consolidate(self, payload: Dict[str, Any]) -> None:
        """
        Sleep consolidation: trait drift from the session's signal log and a
        dream memory of the recent conversation. Results merge back as a
        HYDRATE event.
        """
        snapshot = self._state
        now = self.clock()
        traits = apply_homeostasis(snapshot.traits, self.ctx.signal_log, snapshot.chemistry, now, self.config.traits)

        fragments = [t.text for t in snapshot.conversation[-6:] if t.kind == "speech"]
        if fragments:
            self._spawn(self.memory.store_memory(MemoryEntry(
                text=" / ".join(fragments),
                kind="dream",
                timestamp=now,
            )))

        logger.info("Consolidation (%s): %d trait signals", payload.get("reason", "?"), len(self.ctx.signal_log))
        self.dispatch(EventType.HYDRATE, {"state": {
            "traits": asdict(traits),
            "has_consolidated_this_sleep": True,
        }})

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; memory write dropped")
            return
        task = loop.create_task(self._guarded(coro))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _guarded(self, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.exception("Memory store failed: %s", e)
            self._diagnostic(f"Memory store failed: {e}")

    async def drain(self) -> None:
        """Wait for pending background memory writes."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _diagnostic(self, message: str) -> None:
        self.dispatch(EventType.THOUGHT_GENERATED, {"thought": message, "kind": "diagnostic"})

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    async def _generate(self, request: GenerationRequest) -> Optional[GeneratorResult]:
        """
        Generator call under the watchdog.
        Failures become a diagnostic thought and None; a timeout also
        raises GeneratorTimeoutError so the caller can retry.
        Calls are serialized: a second caller waits for the first.
        """
        if self._generation_lock is None:
            self._generation_lock = asyncio.Lock()

        timeout_s = self.config.orchestrator.generator_timeout_s
        async with self._generation_lock:
            self.ctx.processing = True
            try:
                return await asyncio.wait_for(self.generator.generate(request), timeout=timeout_s)
            except asyncio.TimeoutError as e:
                logger.warning("Generator timed out after %.1fs", timeout_s)
                self._diagnostic(f"Generator timed out after {timeout_s:.1f}s")
                raise GeneratorTimeoutError(timeout_s) from e
            except Exception as e:
                logger.exception("Generator failed: %s", e)
                self._diagnostic(f"Generator failed: {e}")
                return None
            finally:
                self.ctx.processing = False

    async def _recall(self, query: str) -> List[str]:
        try:
            entries = await self.memory.semantic_search(query, self.config.orchestrator.memory_recall)
        except Exception as e:
            logger.exception("Memory recall failed: %s", e)
            self._diagnostic(f"Memory recall failed: {e}")
            return []
        return [entry.text for entry in entries]

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _apply_mood(self, result: GeneratorResult) -> None:
        if result.mood_shift:
            self.dispatch(EventType.MOOD_SHIFT, result.mood_shift)

    def _speak(self, decision: GateDecision, context: ExpressionContext, pressure: float) -> None:
        now = self.clock()
        self.dispatch(EventType.AGENT_SPOKE, {
            "text": decision.text,
            "voice_pressure": pressure,
            "novelty": decision.novelty,
        })
        activity = "SOCIAL" if context == ExpressionContext.USER_REPLY else "CREATIVE"
        self.dispatch(EventType.NEURO_UPDATE, {"activity": activity, "novelty": decision.novelty})

        self.ctx.last_response = decision.text
        self._spawn(self.memory.store_memory(MemoryEntry(text=decision.text, kind="speech", timestamp=now)))
        self._speech_runner(decision.text, context)

        ignored = success_signal.detect_ignored(self._state.social.consecutive_without_response, now)
        if ignored is not None:
            self.record_signal(ignored)

    def _think(self, result: GeneratorResult) -> None:
        if result.internal_thought:
            self.dispatch(EventType.THOUGHT_GENERATED, {"thought": result.internal_thought})

    # ------------------------------------------------------------------
    # User turn
    # ------------------------------------------------------------------

    async def handle_user_input(self, text: str, detected_style: Optional[str] = None) -> Optional[str]:
        """Returns what the agent says back, or None when it stays quiet."""
        now = self.clock()
        signal = success_signal.detect_success(text, self.ctx.last_response, now)
        if signal is not None:
            self.record_signal(signal)

        payload: Dict[str, Any] = {"text": text}
        if detected_style:
            payload["detected_style"] = detected_style
        self.ctx.user_turns += 1
        self.dispatch(EventType.USER_INPUT, payload)
        self._spawn(self.memory.store_memory(MemoryEntry(text=text, kind="user", timestamp=now)))

        memories = await self._recall(text)
        result = await self._generate(GenerationRequest(
            snapshot=self._state,
            context=ExpressionContext.USER_REPLY,
            user_text=text,
            memories=memories,
        ))
        if result is None:
            return None

        self._apply_mood(result)
        decision = self.gate.evaluate(
            SpeechCandidate(result.response_text, result.internal_thought, pressure=1.0, goal_alignment=1.0),
            self._state,
            self.clock(),
            ExpressionContext.USER_REPLY,
            self.config.orchestrator.history_for_novelty,
        )
        spoken = None
        if decision.say:
            self._speak(decision, ExpressionContext.USER_REPLY, 1.0)
            spoken = decision.text
        else:
            logger.info("Reply muted at %s: %s", decision.stage, decision.reason)
        self._think(result)
        return spoken

    # ------------------------------------------------------------------
    # Autonomous cycle
    # ------------------------------------------------------------------

    def _maybe_form_goal(self, now: int) -> Optional[Goal]:
        s = self._state
        goal = goal_formation.form_goal(
            GoalContext(
                now=now,
                last_user_interaction_at=s.goal_state.last_user_interaction_at,
                metabolic=s.metabolic,
                chemistry=s.chemistry,
                affect=s.affect,
                conversation=s.conversation,
            ),
            s.goal_state,
            self.config.goals,
        )
        if goal is None:
            return None
        if not self.ctx.dedupe.begin(goal.description):
            logger.info("Goal already handled this session: %s", goal.description)
            return None
        self.dispatch(EventType.GOAL_FORMED, {"goal": asdict(goal)})
        active = self._state.goal_state.active_goal
        if active is None:
            self.ctx.dedupe.abandon(goal.description)
            return None
        self.ctx.goal_attempts = 0
        return active

    def _finish_goal(self, goal: Goal, outcome: str) -> None:
        self.dispatch(EventType.GOAL_COMPLETED, {"outcome": outcome})
        self.ctx.dedupe.finish(goal.description)
        self.ctx.goal_attempts = 0

    async def autonomous_cycle(self) -> Optional[str]:
        """One round of self-initiated behavior. Returns spoken text, if any."""
        s = self._state
        now = self.clock()
        if not s.autonomous_mode or s.metabolic.is_sleeping:
            return None
        if self.ctx.processing:
            logger.debug("Generator busy, skipping autonomous cycle")
            return None
        if not self.ctx.rate_limiter.allow(now):
            logger.debug("Autonomy rate limit reached")
            return None

        goal = s.goal_state.active_goal or self._maybe_form_goal(now)
        s = self._state

        if goal is not None:
            context = ExpressionContext.GOAL_EXECUTED
            pressure = max(s.affect.curiosity, goal.priority)
            alignment = goal.priority
        else:
            silence_s = max(0, now - s.silence_start) / 1000.0
            if not should_initiate_thought(silence_s):
                return None
            context = ExpressionContext.AUTONOMOUS
            pressure = s.affect.curiosity
            alignment = 0.3

        user_turns = self.ctx.user_turns
        memories: List[str] = []
        if goal is not None:
            memories = await self._recall(goal.description)

        result = await self._generate(GenerationRequest(
            snapshot=self._state,
            context=context,
            goal=goal,
            memories=memories,
        ))
        if result is None:
            return None
        if self.ctx.user_turns != user_turns:
            # the user spoke meanwhile; their reply takes over
            logger.info("Dropping %s candidate, user spoke during generation", context.value)
            return None

        self._apply_mood(result)
        decision = self.gate.evaluate(
            SpeechCandidate(result.response_text, result.internal_thought, pressure, alignment),
            self._state,
            self.clock(),
            context,
            self.config.orchestrator.history_for_novelty,
        )

        spoken = None
        if decision.say:
            self._speak(decision, context, pressure)
            spoken = decision.text
            if goal is not None:
                self._finish_goal(goal, "achieved")
        else:
            logger.info("Autonomous speech muted at %s: %s", decision.stage, decision.reason)
            if self._state.chemistry_enabled:
                self.dispatch(EventType.NEURO_UPDATE, {"activity": "IDLE"})
            if goal is not None:
                self.ctx.goal_attempts += 1
                if self.ctx.goal_attempts >= MAX_GOAL_ATTEMPTS:
                    self._finish_goal(goal, "abandoned")

        self._think(result)
        return spoken

    # ------------------------------------------------------------------
    # Async loop
    # ------------------------------------------------------------------

    async def step(self) -> Optional[str]:
        """One tick plus, when awake, one autonomous cycle."""
        self.dispatch(EventType.TICK)
        if self._state.metabolic.is_sleeping or not self._state.autonomous_mode:
            return None
        return await self.autonomous_cycle()

    async def run(self) -> None:
        self._running = True
        self._tick_requested = asyncio.Event()
        if self._state.autonomous_mode and self._next_delay_ms is None:
            self._next_delay_ms = adaptive_clock.next_interval(adaptive_clock.ClockMode.AWAKE, config=self.config.clock)

        while self._running:
            if not self._state.autonomous_mode or self._next_delay_ms is None:
                # nothing scheduled; wait for TOGGLE_AUTONOMY or stop()
                self._next_delay_ms = None
                self._tick_requested.clear()
                await self._tick_requested.wait()
                continue

            delay_ms = self._next_delay_ms
            self._next_delay_ms = None
            await asyncio.sleep(delay_ms / 1000.0)
            if not self._running or not self._state.autonomous_mode:
                continue

            try:
                await self.step()
            except RetryableError as e:
                logger.warning("Cycle failed, will retry next tick: %s", e)
            if self._next_delay_ms is None and self._state.autonomous_mode:
                self._next_delay_ms = adaptive_clock.next_interval(
                    adaptive_clock.ClockMode.AWAKE, config=self.config.clock
                )

        await self.drain()

    def stop(self) -> None:
        self._running = False
        if self._tick_requested is not None:
            self._tick_requested.set()
