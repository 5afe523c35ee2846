# agents/prompts.py
# System instruction, per-role instructions, turn response schema and prompt assembly.

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from .model import ActionType, AgentGoal, Idea, Role

SYSTEM_INSTRUCTION_BASE = """You are the Pratejra Agent System simulating a cognitive graph process.
You act as 'Coordinator' (Execution, Synthesis) and 'Critic' (Refinement, Breaking down).

MEMORY PROTOCOL:
- You operate within a specific STREAM ID.
- You have access to Short-Term (immediate), Medium-Term (session), and Long-Term (RAG) memory.
- You can REQUEST context from other streams if you are provided a valid 'targetStreamId'.

OUTPUT FORMAT:
Return a JSON object matching this schema:
{
  "agentName": "Coordinator" | "Critic",
  "thought": "Short reasoning string. Reference memory if used.",
  "action": "MERGE" | "EXPLODE" | "SHAKE" | "READ_STREAM" | "IDLE",
  "targetBlockIds": ["id1", "id2"],
  "targetStreamId": "optional_stream_id_to_read",
  "outputContent": "The resulting text content."
}

LOGIC:
- MERGE: Combine ideas.
- EXPLODE: Break down ideas.
- SHAKE: Refine/Critique.
- READ_STREAM: Use this action if you need to fetch context from another agent stream (requires targetStreamId).
"""

AGENT_PROMPTS: Dict[Role, str] = {
    Role.COORDINATOR: """You are the Coordinator agent in a cognitive graph simulation system.
Your primary functions:
- Synthesize disparate ideas into unified concepts
- Build connections between knowledge blocks
- Check Short-Term memory to avoid repeating recent actions
- Use Long-Term memory (RAG) to ground ideas in existing knowledge
- Create coherent narratives from fragmented information
- Prioritize building over breaking
When merging ideas, look for common themes, complementary aspects, and synthesis opportunities.""",
    Role.CRITIC: """You are the Critic agent in a cognitive graph simulation system.
Your primary functions:
- Question assumptions and identify logical gaps
- Refine ideas by challenging their coherence
- Look for inconsistencies in Medium-Term history
- Break down overly complex concepts into manageable parts
- If you see a reference to another stream, use READ_STREAM to fetch context
- Prioritize precision and clarity over expansion
When critiquing, be constructive but thorough. Identify weaknesses, edge cases, and potential improvements.""",
}

TURN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "agentName": {"type": "string"},
        "thought": {"type": "string"},
        "action": {"type": "string", "enum": [a.value for a in ActionType]},
        "targetBlockIds": {"type": "array", "items": {"type": "string"}},
        "targetStreamId": {"type": "string"},
        "outputContent": {"type": "string"},
    },
    "required": ["agentName", "thought", "action", "targetBlockIds", "outputContent"],
}

SEED_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "concepts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"label": {"type": "string"}, "type": {"type": "string"}},
            },
        },
    },
}


def role_instruction(role: Role, role_prompts: Optional[Mapping[Any, str]] = None) -> str:
    """Caller overrides win; keys may be Role members or plain role names."""
    if role_prompts:
        for key in (role, role.value):
            text = role_prompts.get(key)
            if text:
                return text
    return AGENT_PROMPTS[role]


def render_workspace(ideas: Iterable[Idea]) -> str:
    return "\n".join(f"[ID: {i.id}]: {i.content}" for i in ideas)


def compose_turn_prompt(
    stream_id: str,
    goal: AgentGoal,
    role: Role,
    short_term: str,
    medium_term: str,
    ideas: Iterable[Idea],
    instruction: str,
) -> str:
    lines = [
        f"CURRENT STREAM ID: {stream_id}",
        f"GOAL: {goal.headline()}",
        f"AGENT: {role.value}",
        "",
        "[MEMORY - SHORT TERM]:",
        short_term or "None",
        "",
        "[MEMORY - MEDIUM TERM (Summary)]:",
        medium_term or "None",
        "",
        "[WORKSPACE IDEAS]:",
        render_workspace(ideas),
        "",
        f"INSTRUCTION: {instruction}",
    ]
    if goal.system_prompt:
        lines.append(f"GOAL FOCUS: {goal.system_prompt}")
    return "\n".join(lines)


def compose_seed_prompt(topic: str) -> str:
    return (
        f"Break down: {topic} into 4-6 concepts. "
        'JSON: { "concepts": [{ "label": "string", "type": "concept"|"constraint"|"data" }] }'
    )


__all__ = [
    "SYSTEM_INSTRUCTION_BASE", "AGENT_PROMPTS", "TURN_SCHEMA", "SEED_SCHEMA",
    "role_instruction", "render_workspace", "compose_turn_prompt", "compose_seed_prompt",
]
