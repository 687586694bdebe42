"""Tool framework: import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
from swiftbot.tools import text_tools, utility  # noqa: F401
from swiftbot.tools.registry import registry, should_enable_tools

__all__ = ["registry", "should_enable_tools"]
