"""Isolated Script Runner for the ``runCustomScript`` operation.

The user's code becomes the body of an ``async def`` that is compiled and run
against a curated namespace. Only the capabilities listed in
``build_namespace`` are visible; builtins are an allow-list and ``import`` goes
through a guard that admits the modules named in ``NODE_FUNCTION_ALLOW_BUILTIN``
and ``NODE_FUNCTION_ALLOW_EXTERNAL``.

Before compiling, the code is checked so that it cannot name dunder or private
attributes, or walk from a coroutine, generator or traceback to its frame.
Those are the routes from an ordinary value back to real modules.
"""
import ast
import asyncio
import builtins
import inspect
import json
import re
import textwrap
import types
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from browser_node.browser.connection import BrowserHandle
from browser_node.browser.downloads import DownloadCapture, attach_downloads
from browser_node.browser.page_setup import ItemPage
from browser_node.config import NodeSettings
from browser_node.constants import SCRIPT_RETURN_SHAPE_MESSAGE, ExecutionMode
from browser_node.exceptions import ScriptExecutionError
from browser_node.host import NodeExecutionContext
from browser_node.models import Item, ItemResult, RunConfiguration, ScriptParams
from browser_node.utils import get_logger

logger = get_logger("browser_node.browser.sandbox")

SCRIPT_FILENAME = "<custom script>"
_SCRIPT_FUNCTION = "__custom_script__"

# No open, exec, eval, compile, globals or getattr; __import__ is replaced by the guard
SAFE_BUILTINS = (
    "abs", "aiter", "all", "anext", "any", "ascii", "bin", "bool", "bytearray",
    "bytes", "callable", "chr", "complex", "dict", "divmod", "enumerate",
    "filter", "float", "format", "frozenset", "hasattr", "hash", "hex", "id",
    "int", "isinstance", "issubclass", "iter", "len", "list", "map", "max",
    "min", "next", "oct", "ord", "pow", "range", "repr", "reversed", "round",
    "set", "slice", "sorted", "str", "sum", "tuple", "zip", "__build_class__",
    "ArithmeticError", "AssertionError", "AttributeError", "Exception",
    "IndexError", "KeyError", "LookupError", "NotImplementedError",
    "RuntimeError", "StopAsyncIteration", "StopIteration", "TimeoutError",
    "TypeError", "ValueError", "ZeroDivisionError",
)


def make_import_guard(allowed: Iterable[str]) -> Callable[..., Any]:
    """Build an ``__import__`` that only admits top-level names in ``allowed``.

    ``*`` admits everything. Relative imports are always refused.
    """
    allowed_names = frozenset(allowed)

    def _guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        root = name.split(".", 1)[0]
        if level != 0 or ("*" not in allowed_names and root not in allowed_names):
            raise ImportError(
                f"Cannot import '{name}' in a custom script. Allow it with "
                "NODE_FUNCTION_ALLOW_BUILTIN or NODE_FUNCTION_ALLOW_EXTERNAL."
            )
        return builtins.__import__(name, globals, locals, fromlist, level)

    return _guarded_import


def restricted_builtins(allowed_modules: Iterable[str]) -> Dict[str, Any]:
    safe = {name: getattr(builtins, name) for name in SAFE_BUILTINS if hasattr(builtins, name)}
    safe["__import__"] = make_import_guard(allowed_modules)
    return safe


# Public attributes that still lead to frames, code objects or the event loop.
# str.format can read attributes through its field names, so scripts format with f-strings.
BLOCKED_ATTRIBUTES = frozenset({
    "ag_code", "ag_frame", "cr_code", "cr_frame", "gi_code", "gi_frame",
    "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
    "tb_frame", "tb_next", "get_coro", "get_loop",
    "format", "format_map",
})


def _attribute_allowed(name: str) -> bool:
    return not name.startswith("_") and name not in BLOCKED_ATTRIBUTES


class _ScriptChecker(ast.NodeVisitor):
    """Rejects names and attribute lookups that escape the namespace."""

    def _reject(self, node: ast.AST, name: str) -> None:
        # the wrapper adds one line above the user's code
        line = getattr(node, "lineno", 2) - 1
        raise ScriptExecutionError(f"Access to '{name}' is not allowed in custom scripts (line {line})")

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__"):
            self._reject(node, node.id)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if not _attribute_allowed(node.attr):
            self._reject(node, node.attr)
        self.generic_visit(node)

    def visit_MatchClass(self, node: ast.AST) -> None:
        for name in node.kwd_attrs:
            if not _attribute_allowed(name):
                self._reject(node, name)
        self.generic_visit(node)


def compile_script(code: str):
    """Compile ``code`` as the body of an async function.

    Raises:
        ScriptExecutionError: on syntax errors, with the line number of the user's code,
            and on dunder names or private and frame attributes
    """
    body = textwrap.indent(code or "", "    ")
    source = f"async def {_SCRIPT_FUNCTION}():\n{body}\n    pass\n"
    try:
        tree = ast.parse(source, SCRIPT_FILENAME, "exec")
        # the wrapper's own name is a FunctionDef name, never a Name node
        _ScriptChecker().visit(tree)
        return compile(tree, SCRIPT_FILENAME, "exec")
    except SyntaxError as e:
        line = (e.lineno or 1) - 1
        raise ScriptExecutionError(f"Syntax error in custom script at line {line}: {e.msg}") from e


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


class ScriptConsole:
    """Console handed to scripts.

    Manual runs forward messages to the host UI. Other runs log them with a
    workflow/node prefix when stdout is enabled and drop them otherwise.
    """

    def __init__(self, context: NodeExecutionContext, enable_stdout: bool):
        self._context = context
        self._enable_stdout = enable_stdout
        self._pending: Set[asyncio.Future] = set()

    def _on_ui_message_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(
                f"Could not forward console message to the UI: {future.exception()}",
                emoji_key="console",
            )

    def _emit(self, level: str, *args: Any) -> None:
        context = self._context
        if context.mode == ExecutionMode.MANUAL and context.send_message_to_ui:
            result = context.send_message_to_ui(*args)
            if inspect.isawaitable(result):
                future = asyncio.ensure_future(result)
                self._pending.add(future)
                future.add_done_callback(self._on_ui_message_done)
            return
        if not self._enable_stdout:
            return
        text = " ".join(_render(arg) for arg in args)
        message = f'[Workflow "{context.workflow_id}"][Node "{context.node_name}"] {text}'
        if level == "error":
            logger.error(message, emoji_key="console")
        elif level == "warn":
            logger.warning(message, emoji_key="console")
        else:
            logger.info(message, emoji_key="console")

    def log(self, *args: Any) -> None:
        self._emit("log", *args)

    info = log
    debug = log

    def warn(self, *args: Any) -> None:
        self._emit("warn", *args)

    warning = warn

    def error(self, *args: Any) -> None:
        self._emit("error", *args)

    def print(self, *args: Any, sep: str = " ", end: str = "\n", **_ignored: Any) -> None:
        self._emit("log", sep.join(_render(arg) for arg in args))


def normalize_script_results(value: Any, item_index: int) -> List[ItemResult]:
    """Turn a script's return value into result rows paired with ``item_index``."""
    if not isinstance(value, (list, tuple)):
        raise ScriptExecutionError(SCRIPT_RETURN_SHAPE_MESSAGE)

    results: List[ItemResult] = []
    for entry in value:
        if isinstance(entry, ItemResult):
            results.append(entry.model_copy(update={"paired_item": item_index}))
        elif isinstance(entry, dict) and "json" in entry:
            results.append(ItemResult(
                json=entry.get("json") or {},
                binary=entry.get("binary") or {},
                paired_item=item_index,
            ))
        elif isinstance(entry, dict):
            results.append(ItemResult(json=entry, paired_item=item_index))
        else:
            raise ScriptExecutionError(SCRIPT_RETURN_SHAPE_MESSAGE)
    return results


def script_modules() -> Dict[str, Any]:
    """Stand-ins for ``asyncio``, ``json`` and ``re`` that expose only their helpers.

    The real modules reach ``os``, ``codecs`` and subprocess creation through
    their own attributes.
    """
    return {
        "asyncio": types.SimpleNamespace(
            sleep=asyncio.sleep,
            gather=asyncio.gather,
            wait_for=asyncio.wait_for,
            TimeoutError=asyncio.TimeoutError,
        ),
        "json": types.SimpleNamespace(
            dumps=json.dumps,
            loads=json.loads,
            JSONDecodeError=json.JSONDecodeError,
        ),
        "re": types.SimpleNamespace(
            compile=re.compile,
            escape=re.escape,
            findall=re.findall,
            finditer=re.finditer,
            fullmatch=re.fullmatch,
            match=re.match,
            search=re.search,
            split=re.split,
            sub=re.sub,
            subn=re.subn,
            IGNORECASE=re.IGNORECASE,
            MULTILINE=re.MULTILINE,
            DOTALL=re.DOTALL,
            I=re.I,
            M=re.M,
            S=re.S,
            error=re.error,
        ),
    }


class ScriptRunner:
    """Runs one item's custom script with a restricted set of capabilities."""

    def __init__(self, settings: NodeSettings, context: NodeExecutionContext, config: RunConfiguration):
        self.settings = settings
        self.context = context
        self.config = config

    def build_namespace(self, handle: BrowserHandle, item_page: ItemPage, item: Item, items: List[Item]) -> Dict[str, Any]:
        """The globals a script runs against; nothing else is reachable."""
        context = self.context
        script_console = ScriptConsole(context, self.settings.code_enable_stdout)

        def get_node_parameter(name: str, fallback: Any = None) -> Any:
            if name in item.parameters:
                return item.parameters[name]
            return context.get_node_parameter(name, fallback)

        return {
            "__builtins__": restricted_builtins(self.settings.allowed_script_modules),
            "__name__": "__custom_script__",
            "page": item_page.page,
            "browser": handle.browser,
            "playwright": handle.playwright,
            "helpers": context.helpers,
            "get_node_parameter": get_node_parameter,
            "get_workflow_static_data": context.get_workflow_static_data,
            "item": item.json_data,
            "item_index": item.index,
            "items": [entry.json_data for entry in items],
            "human": item_page.typer,
            "console": script_console,
            "print": script_console.print,
            **script_modules(),
        }

    async def execute(self, code: str, namespace: Dict[str, Any]) -> Any:
        """Compile and await the script; any failure becomes ``ScriptExecutionError``."""
        compiled = compile_script(code)
        try:
            exec(compiled, namespace)
            return await namespace[_SCRIPT_FUNCTION]()
        except ScriptExecutionError:
            raise
        except Exception as e:
            raise ScriptExecutionError(str(e) or type(e).__name__) from e

    async def run(
        self,
        handle: BrowserHandle,
        item_page: ItemPage,
        item: Item,
        items: List[Item],
        params: ScriptParams,
    ) -> List[ItemResult]:
        """Run the script for ``item`` and collect its results and downloads."""
        logger.info(f"Running custom script for item {item.index + 1} of {len(items)}", emoji_key="script")
        capture: Optional[DownloadCapture] = None
        directory: Optional[str] = None
        try:
            if self.config.capture_downloads:
                capture = DownloadCapture()
                directory = await capture.begin(item_page.page)

            namespace = self.build_namespace(handle, item_page, item, items)
            value = await self.execute(params.script_code, namespace)
            try:
                results = normalize_script_results(value, item.index)
            except ValidationError as e:
                raise ScriptExecutionError(f"Custom script returned invalid items: {e}") from e

            if capture is not None and directory is not None:
                files = await capture.harvest(directory)
                results = attach_downloads(results, files)
            return results
        finally:
            if capture is not None and directory is not None:
                await capture.cleanup(directory)
