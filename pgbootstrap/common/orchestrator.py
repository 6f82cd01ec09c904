# pgbootstrap/common/orchestrator.py
# -*- coding: utf-8 -*-
"""
Runs the provisioning stages one after another.
"""

import logging
import sys
import time
from typing import Any, Callable, Dict, List, Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.setup.config_models import AppSettings


class Orchestrator:
    """
    Runs a fixed sequence of named stages, strictly in order.

    Every stage receives the shared ``context`` dict and ``app_settings`` as
    keyword arguments, and its return value is stored in the context under
    ``"<name>_result"``. Any stage that raises stops the run: the failure is
    logged and the process exits with status 1. Nothing is retried or rolled
    back; the next run converges from whatever state was left.
    """

    def __init__(
        self,
        app_settings: AppSettings,
        orchestrator_logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.logger = orchestrator_logger or logging.getLogger(__name__)
        self.tasks: List[Dict[str, Any]] = []
        self.context: Dict[str, Any] = {}

    def add_task(
        self,
        name: str,
        func: Callable,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Appends a stage to the run.

        Args:
            name: Stage name, used in log lines and as the context result key.
            func: The function to execute for this stage.
            args: Positional arguments to pass to the function.
            kwargs: Keyword arguments to pass to the function.
        """
        self.tasks.append({
            "name": name,
            "func": func,
            "args": args or [],
            "kwargs": kwargs or {},
        })
        self.logger.debug(f"Stage '{name}' added to the queue.")

    def _log(self, message: str, level: str = "info", exc_info: bool = False) -> None:
        log_bootstrap(message, level, self.logger, self.app_settings, exc_info=exc_info)

    def run(self) -> Dict[str, Any]:
        """
        Executes every stage in order.

        Returns:
            Dict[str, Any]: The shared context, holding each stage's result.
            A failing stage never returns; it exits the process with status 1.
        """
        symbols = self.app_settings.symbols
        total = len(self.tasks)
        for i, task in enumerate(self.tasks, start=1):
            task_name = task["name"]
            self._log(f"{symbols.get('step', '➡️')} Stage {i}/{total}: {task_name}...")
            started = time.monotonic()
            try:
                task["kwargs"]["context"] = self.context
                task["kwargs"]["app_settings"] = self.app_settings
                result = task["func"](*task["args"], **task["kwargs"])
            except Exception as e:
                elapsed = time.monotonic() - started
                self._log(
                    f"{symbols.get('critical', '🔥')} Stage '{task_name}' failed after {elapsed:.1f}s: {e}",
                    "critical",
                    exc_info=True,
                )
                self._log(
                    f"{symbols.get('error', '❌')} Halting provisioning; no later stage will run.",
                    "error",
                )
                sys.exit(1)

            self.context[f"{task_name}_result"] = result
            self._log(
                f"{symbols.get('success', '✅')} Stage {i}/{total} '{task_name}' completed in "
                f"{time.monotonic() - started:.1f}s."
            )

        self._log(f"{symbols.get('sparkles', '✨')} All {total} stages completed.")
        return self.context
