"""Questionary / prompt_toolkit theme for dbdeploy prompts.

Only the confirmation prompt before a drop is styled. It is red so that
the destructive question is hard to miss.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansibrightred",
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "instruction": "ansibrightblack",
    }
)
