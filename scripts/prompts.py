#!/usr/bin/env python3
"""
NFT Marketplace CLI: Terminal prompts

Input/output boundary of the interactive shell: numbered menus, free-form
questions, secrets and result display. Input and output callables are
injectable so the workflows can be driven by scripted answers.
"""

import getpass
import json
from typing import Any, Callable, List, Optional, Sequence, Tuple

from common import FAILURE_MESSAGE

Choice = Tuple[str, Any]


class Prompter:
    """Plain input()/print() prompts."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output: Callable[[str], None] = print,
        secret_func: Callable[[str], str] = getpass.getpass,
    ):
        self._input = input_func
        self._output = output
        self._secret = secret_func

    def show(self, text: str = "") -> None:
        self._output(text)

    def ask(self, message: str, default: Optional[str] = None) -> str:
        suffix = f" [{default}]" if default else ""
        answer = self._input(f"{message}{suffix}: ").strip()
        if not answer and default is not None:
            return default
        return answer

    def ask_secret(self, message: str) -> str:
        return self._secret(f"{message}: ").strip()

    def confirm(self, message: str, default: bool = False) -> bool:
        hint = "Y/n" if default else "y/N"
        answer = self._input(f"{message} ({hint}): ").strip().lower()
        if not answer:
            return default
        return answer in ("y", "yes")

    def select(self, message: str, choices: Sequence[Choice]) -> Any:
        """
        Numbered menu. Re-asks until a listed number is entered.

        Args:
            message: Question shown above the menu
            choices: (label, value) pairs

        Returns:
            Value of the selected choice
        """
        if not choices:
            raise ValueError("Nothing to choose from")

        self._output(message)
        for number, (label, _) in enumerate(choices, start=1):
            self._output(f"  {number}) {label}")

        while True:
            answer = self._input("> ").strip()
            if answer.isdecimal() and 1 <= int(answer) <= len(choices):
                return choices[int(answer) - 1][1]
            self._output(f"Enter a number between 1 and {len(choices)}")

    def show_result(self, result: dict) -> None:
        """Print a workflow result: its message, or the error and suggestion."""
        if result.get("success"):
            self._output(result.get("message") or "Done.")
            return
        self._output(result.get("message") or result.get("error") or FAILURE_MESSAGE)
        if result.get("suggestion"):
            self._output(f"Hint: {result['suggestion']}")

    def show_records(self, records: List[dict]) -> None:
        for record in records:
            self._output(json.dumps(record, indent=2, ensure_ascii=False, default=str))
