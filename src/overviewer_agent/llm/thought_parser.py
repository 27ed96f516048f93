"""Extract an AgentThought from free-form model output."""

import json
import re

from pydantic import ValidationError

from .base import AgentThought

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_OUTER_BRACES = re.compile(r"\{[\s\S]*\}")

UNPARSEABLE_ANSWER = "Unable to parse response"


def _candidates(content: str) -> list[str]:
    found = [m.group(1) for m in _FENCED_BLOCK.finditer(content)]
    outer = _OUTER_BRACES.search(content)
    if outer:
        found.append(outer.group(0))
    return found


def parse_thought(content: str) -> AgentThought:
    """
    Parse the model's JSON thought, tolerating prose and code fences.

    Output that cannot be parsed ends the loop: the returned thought is
    ``finished`` so a confused model does not burn the iteration budget.
    """
    candidates = _candidates(content)
    if not candidates:
        return AgentThought(reasoning=content, finished=True, final_answer=UNPARSEABLE_ANSWER)

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict):
            continue
        try:
            return AgentThought.model_validate(data)
        except ValidationError:
            continue

    return AgentThought(reasoning=content, finished=True, final_answer=UNPARSEABLE_ANSWER)
