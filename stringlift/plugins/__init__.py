"""Post-processing plugins for stringlift output."""

from stringlift.plugins.base import Plugin, PluginChain, PluginContext
from stringlift.plugins.beautify import BeautifyPlugin

__all__ = ["Plugin", "PluginChain", "PluginContext", "BeautifyPlugin"]
