"""Browser Node: drive a Chromium browser over a batch of workflow items."""

__version__ = "0.3.0"

from browser_node.orchestrator import BrowserNodeRunner, resolve_run_configuration, run_node  # noqa: E402

__all__ = ["BrowserNodeRunner", "resolve_run_configuration", "run_node", "__version__"]
