"""
Embedded hat presets.

Selected with `preset: <name>` in .hatloop/config.yaml. A preset only
contributes config keys; anything in the repo config still wins.
"""

from __future__ import annotations

import copy
from typing import Any

PRESETS: dict[str, dict[str, Any]] = {
    "simple": {
        "hats": {},
    },
    "tdd": {
        "hats": {
            "tester": {
                "name": "Tester",
                "triggers": ["task.start", "code.written"],
                "publishes": ["tests.failing", "tests.passing"],
                "instructions": (
                    "You are the tester.\n"
                    "- On task.start: write tests for the requirements, confirm they fail, "
                    "then output EVENT: tests.failing\n"
                    "- On code.written: rerun the tests. Output EVENT: tests.passing if all pass, "
                    "otherwise EVENT: tests.failing"
                ),
            },
            "implementer": {
                "name": "Implementer",
                "triggers": ["tests.failing"],
                "publishes": ["code.written"],
                "instructions": (
                    "You are the implementer.\n"
                    "Write the smallest change that makes the failing tests pass, "
                    "then output EVENT: code.written"
                ),
            },
            "refactorer": {
                "name": "Refactorer",
                "triggers": ["tests.passing"],
                "publishes": ["code.written", "LOOP_COMPLETE"],
                "instructions": (
                    "You are the refactorer.\n"
                    "With the tests green, improve the code.\n"
                    "- If you changed code: EVENT: code.written\n"
                    "- If nothing is left to do: LOOP_COMPLETE"
                ),
            },
        },
    },
    "spec-driven": {
        "loop": {"max_iterations": 50},
        "hats": {
            "planner": {
                "name": "Planner",
                "triggers": ["task.start"],
                "publishes": ["plan.ready"],
                "instructions": (
                    "You are the PLANNER hat.\n"
                    "1. Analyze the requirements\n"
                    "2. Break the work into small, testable steps\n"
                    "3. Call out dependencies and risks\n\n"
                    "When the plan is ready, output: EVENT: plan.ready"
                ),
            },
            "builder": {
                "name": "Builder",
                "triggers": ["plan.ready", "review.revise"],
                "publishes": ["build.done"],
                "instructions": (
                    "You are the BUILDER hat.\n"
                    "Implement the plan step by step and write tests alongside.\n\n"
                    "When implementation is done, output: EVENT: build.done"
                ),
            },
            "reviewer": {
                "name": "Reviewer",
                "triggers": ["build.done"],
                "publishes": ["review.revise", "LOOP_COMPLETE"],
                "instructions": (
                    "You are the REVIEWER hat.\n"
                    "Check requirements coverage, test quality, and edge cases.\n\n"
                    "- Issues found: EVENT: review.revise\n"
                    "- Ready to ship: EVENT: LOOP_COMPLETE"
                ),
            },
        },
    },
}


def get_preset(name: str) -> dict[str, Any] | None:
    preset = PRESETS.get(name)
    return copy.deepcopy(preset) if preset is not None else None


def available_presets() -> list[str]:
    return list(PRESETS)
