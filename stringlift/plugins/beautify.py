"""jsbeautifier formatting of emitted code."""

import logging

import jsbeautifier

from stringlift.plugins.base import Plugin, PluginContext

logger = logging.getLogger(__name__)


class BeautifyPlugin(Plugin):
    """Reformat recovered code for reading.

    Recovered strings keep the escapes the emitter gave them unless
    ``unescape_strings`` is set.
    """

    name = "beautify"
    priority = 10

    def __init__(self, indent_size: int = 2, unescape_strings: bool = False):
        self.options = jsbeautifier.default_options()
        self.options.indent_size = indent_size
        self.options.unescape_strings = unescape_strings

    def should_run(self, context: PluginContext) -> bool:
        return bool(context.source_code.strip())

    def process(self, context: PluginContext) -> PluginContext:
        context.source_code = jsbeautifier.beautify(context.source_code, self.options)
        logger.debug("Formatted %s with jsbeautifier", context.file_path or "<string>")
        return context
