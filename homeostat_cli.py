import argparse
import asyncio
import json
import logging
import random
from typing import List, Optional

from homeostat.cortex.speech.speech_gate import ExpressionContext
from homeostat.cortex.thinking.generator import LlmConfig, LlmGenerator
from homeostat.errors import GeneratorTimeoutError
from homeostat.hippocampus.state.snapshot_store import SnapshotStore
from homeostat.kernel.events import EventType
from homeostat.orchestrator.cycle_orchestrator import CycleOrchestrator

COMMANDS = {
    "/auto": EventType.TOGGLE_AUTONOMY,
    "/chem": EventType.TOGGLE_CHEMISTRY,
    "/poetic": EventType.TOGGLE_STYLE,
    "/sleep": EventType.SLEEP_START,
    "/wake": EventType.SLEEP_END,
    "/reset": EventType.RESET,
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="homeostat", description="Chat with a homeostatic agent.")
    parser.add_argument("--snapshot", help="load the drive state from this JSON file and save it on exit")
    parser.add_argument("--seed", type=int, help="seed for the decision randomness")
    parser.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING, ...")
    return parser.parse_args(argv)


def print_agent(text: str, context: ExpressionContext) -> None:
    if context != ExpressionContext.USER_REPLY:
        print(f"\nAgent: {text}\nYou: ", end="", flush=True)


def describe_state(orchestrator: CycleOrchestrator) -> str:
    s = orchestrator.state
    summary = {
        "energy": round(s.metabolic.energy, 1),
        "sleeping": s.metabolic.is_sleeping,
        "affect": {k: round(v, 2) for k, v in vars(s.affect).items()},
        "chemistry": {k: round(v, 1) for k, v in vars(s.chemistry).items()},
        "social_cost": round(s.social.social_cost, 2),
        "autonomy_budget": round(s.social.autonomy_budget, 2),
        "autonomous": s.autonomous_mode,
        "chemistry_enabled": s.chemistry_enabled,
        "poetic": s.poetic_mode,
        "goal": s.goal_state.active_goal.description if s.goal_state.active_goal else None,
    }
    return json.dumps(summary, indent=2)


async def main_async(args: argparse.Namespace) -> None:
    store = SnapshotStore(args.snapshot) if args.snapshot else None
    rng = random.Random(args.seed) if args.seed is not None else random.Random()

    orchestrator = CycleOrchestrator(
        generator=LlmGenerator(LlmConfig.from_env()),
        rng=rng,
        speech_runner=print_agent,
    )

    if store is not None:
        # a corrupted snapshot stops startup; fix or delete the file
        snapshot = store.load()
        if snapshot is not None:
            orchestrator.hydrate(snapshot)

    loop_task = asyncio.create_task(orchestrator.run())
    print("Homeostat online. Commands: /auto /chem /poetic /sleep /wake /state /reset. Type 'exit' to quit.\n")

    try:
        while True:
            user_text = await asyncio.to_thread(input, "You: ")
            user_text = user_text.strip()

            if not user_text:
                continue

            if user_text.lower() in {"exit", "quit"}:
                print("Agent: Okay. Resting now.")
                break

            command = user_text.split()[0].lower()
            if command == "/state":
                print(describe_state(orchestrator))
                continue
            if command in COMMANDS:
                orchestrator.dispatch(COMMANDS[command])
                continue

            try:
                reply = await orchestrator.handle_user_input(user_text)
            except GeneratorTimeoutError as e:
                print(f"[{e}]")
                continue
            if reply:
                print(f"Agent: {reply}")

    finally:
        orchestrator.stop()
        await loop_task
        if store is not None:
            store.save(orchestrator.state, orchestrator.ctx.signal_log)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
