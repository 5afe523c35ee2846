# main.py
# Boot script: logging + metrics, one core session, one simulation (optionally supervised).

from __future__ import annotations

import argparse
import importlib
import json
import sys
from pathlib import Path
from typing import List, Optional

from agents.model import AGENT_GOALS, AgentGoal
from common.errors import GatewayError
from common.utils import write_text
from gateway.base import ReasoningGateway
from gateway.scripted import ScriptedGateway
from memory.config import MEMCFG
from observability.log import get_logger, setup_logging
from observability.metrics import start_metrics_server
from session import CoreSession
from supervisor.model import UserProfile

log = get_logger("main")


def load_gateway(target: Optional[str], script: Optional[str]) -> ReasoningGateway:
    """
    --script FILE      replay canned replies (JSON list or {"replies": [...], "default": ...})
    --gateway MOD:FN   import FN from MOD and call it with no arguments
    """
    if script:
        return ScriptedGateway.from_file(script)
    if target:
        module_name, _, attr = target.partition(":")
        if not attr:
            raise SystemExit(f"--gateway expects module:factory, got {target!r}")
        factory = getattr(importlib.import_module(module_name), attr)
        return factory()
    raise SystemExit("no reasoning gateway: pass --script FILE or --gateway module:factory")


def pick_goal(goal: str) -> AgentGoal:
    for g in AGENT_GOALS:
        if goal in (g.id, g.type, g.label):
            return g
    return AgentGoal.from_text(goal)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run an agent simulation against the memory & supervisory core.")
    p.add_argument("--goal", default="synthesis", help="preset id/type/label or free text")
    p.add_argument("--topic", default=None, help="topic used to seed the workspace (defaults to goal label)")
    p.add_argument("--script", default=None, help="scripted gateway replies (JSON)")
    p.add_argument("--gateway", default=None, help="module:factory returning a ReasoningGateway")
    p.add_argument("--data-dir", default=None, help="FileKV directory (in-memory unless this or --persist is given)")
    p.add_argument("--persist", action="store_true", help="persist under CORE_DATA_DIR/kv")
    p.add_argument("--supervise", action="store_true", help="run the supervisor loop alongside the simulation")
    p.add_argument("--user-goals", default="", help="profile goals for the supervisor")
    p.add_argument("--user-dreams", default="", help="profile dreams for the supervisor")
    p.add_argument("--archive", action="store_true", help="archive the stream when the simulation ends")
    p.add_argument("--export-training", default=None, help="write collected training examples as JSONL")
    p.add_argument("--metrics-port", type=int, default=None, help="serve Prometheus metrics on this port")
    p.add_argument("--log-level", default=None)
    p.add_argument("--log-format", default=None, choices=["json", "console"])
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_format)
    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    gateway = load_gateway(args.gateway, args.script)
    goal = pick_goal(args.goal)

    data_dir = Path(args.data_dir) if args.data_dir else (MEMCFG.KV_DIR if args.persist else None)
    with CoreSession(gateway, data_dir=data_dir) as session:
        sim = session.new_simulation(goal, topic=args.topic)
        log.info("simulation_started", stream_id=sim.stream_id, goal=goal.label, ideas=len(sim.workspace))

        if args.supervise:
            session.decisions.subscribe(
                lambda ds: ds and log.info("decision", type=ds[0].type.value, display=ds[0].display_mode.value,
                                           message=ds[0].user_message)
            )
            session.supervisor.start(UserProfile(goals=args.user_goals, dreams=args.user_dreams),
                                     lambda: sim.stream_id)

        status = 0
        try:
            for turn in sim.run():
                log.info("turn", step=turn.step, agent=turn.agent_name, action=turn.action.type.value,
                         thought=turn.thought)
        except GatewayError as e:
            log.error("simulation_failed", stream_id=sim.stream_id, error=str(e))
            status = 1
        finally:
            session.supervisor.stop()

        if args.archive:
            session.memory.archive(sim.stream_id)
        session.flush()

        if args.export_training and session.training is not None:
            write_text(args.export_training, session.training.export_jsonl())
            log.info("training_exported", path=args.export_training)

        print(json.dumps({
            "stream_id": sim.stream_id,
            "turns": sim.turn_count,
            "workspace": [i.to_dict() for i in sim.workspace],
            "health": session.health(),
        }, indent=2, default=str))
    return status


if __name__ == "__main__":
    sys.exit(main())
