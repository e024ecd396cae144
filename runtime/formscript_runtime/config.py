"""
FormScript runtime configuration.
"""

import os
from dataclasses import dataclass


ENV_MAX_LOOP_ITERATIONS = "FORMSCRIPT_MAX_LOOP_ITERATIONS"
ENV_FORM_NAME = "FORMSCRIPT_FORM_NAME"


@dataclass
class RuntimeConfig:
    """Knobs shared by the interpreter and the runtime front end"""
    max_loop_iterations: int = 100_000
    default_file_extension: str = "txt"
    default_form_name: str = "Form1"

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build a config, overriding defaults from FORMSCRIPT_* variables"""
        config = cls()
        raw = os.environ.get(ENV_MAX_LOOP_ITERATIONS)
        if raw:
            try:
                config.max_loop_iterations = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_MAX_LOOP_ITERATIONS} must be an integer, got {raw!r}")
        form_name = os.environ.get(ENV_FORM_NAME)
        if form_name:
            config.default_form_name = form_name
        return config


__all__ = [
    'RuntimeConfig',
]
