"""Configuration error shared by the YAML loader and the environment reader."""

from pathlib import Path
from typing import List, Optional, Union


class ConfigurationError(Exception):
    """
    Invalid or missing configuration. Fatal at startup.

    The rendered message names the offending file (when known), lists every
    validation error and ends with fix hints, so the CLI prints it unchanged.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Optional[Union[str, Path]] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        self.source = str(source) if source is not None else None
        super().__init__(self.render())

    def render(self) -> str:
        header = f"{self.message} [{self.source}]" if self.source else self.message
        lines = [header]
        lines.extend(f"  - {error}" for error in self.errors)
        if self.suggestions:
            lines.append("How to fix:")
            lines.extend(f"  * {hint}" for hint in self.suggestions)
        return "\n".join(lines)
