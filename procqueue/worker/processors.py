"""Processor adapters.

A processor is any callable taking a job's ``payload_ref``. Raising an
exception or returning ``False`` marks the attempt as failed; any other
return value counts as success.
"""
from __future__ import annotations
import importlib
import shlex
from typing import Any, Callable, Optional

from ..errors import ConfigError
from .executor import run_command

Processor = Callable[[str], Any]


def load_processor(path: str) -> Processor:
    """Resolve ``package.module:callable`` into a processor."""
    module_name, sep, attr = (path or "").partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Processor must look like 'package.module:callable', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import processor module {module_name!r}: {e}") from e

    target = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ConfigError(f"{module_name!r} has no attribute {attr!r}") from e
    if not callable(target):
        raise ConfigError(f"Processor {path!r} is not callable")
    return target


class CommandProcessor:
    """Runs a shell command per job, with ``{payload}`` replaced by the payload ref."""

    def __init__(self, template: str, timeout: Optional[float] = None):
        if "{payload}" not in template:
            raise ConfigError("Command template must contain a {payload} placeholder")
        self.template = template
        self.timeout = timeout

    def render(self, payload_ref: str) -> str:
        return self.template.replace("{payload}", shlex.quote(payload_ref))

    def __call__(self, payload_ref: str) -> str:
        result = run_command(self.render(payload_ref), timeout=self.timeout)
        result.raise_for_status()
        return result.stdout
