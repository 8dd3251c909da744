"""Text passes applied to emitted code."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional


@dataclass
class PluginContext:
    """Emitted code on its way to disk."""
    source_code: str
    file_path: Optional[Path] = None
    applied: list[str] = field(default_factory=list)


class Plugin(ABC):
    """A post-processing pass.

    Plugins run after emission and only see text, so they cannot affect which
    call sites were rewritten.
    """

    name: str = "plugin"
    priority: int = 100  # lower runs first

    @abstractmethod
    def process(self, context: PluginContext) -> PluginContext:
        """Return the context with ``source_code`` updated."""

    def should_run(self, context: PluginContext) -> bool:
        return True


class PluginChain:
    """Ordered set of post-processing passes."""

    def __init__(self, plugins: Iterable[Plugin] = ()):
        self.plugins: list[Plugin] = []
        for plugin in plugins:
            self.add_plugin(plugin)

    def __len__(self) -> int:
        return len(self.plugins)

    def add_plugin(self, plugin: Plugin) -> "PluginChain":
        self.plugins.append(plugin)
        self.plugins.sort(key=lambda p: p.priority)
        return self

    def run(self, code: str, file_path: Optional[Path] = None) -> PluginContext:
        """Apply every plugin that wants to run, lowest priority first."""
        context = PluginContext(source_code=code, file_path=file_path)
        for plugin in self.plugins:
            if plugin.should_run(context):
                context = plugin.process(context)
                context.applied.append(plugin.name)
        return context
