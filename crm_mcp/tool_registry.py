"""Registry mapping tool names to business handlers."""
import inspect
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .schema_compiler import ToolDefinition
from .utils.errors import RegistryError, RegistryMismatchError
from .utils.validation import validate_tool_name

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Dict[str, Any]], Any]


@dataclass
class ValidationReport:
    """Differences between registered handlers and compiled tools."""

    unregistered: List[str] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.unregistered or self.orphaned or self.duplicates)


class ToolRegistry:
    """Maps compiled tool names to the business handlers that implement them.

    Handlers take the call arguments (including the injected ``userInfo``)
    and may be plain functions or coroutines. The registry is frozen once the
    application starts serving.
    """

    def __init__(self):
        self.handlers: Dict[str, ToolHandler] = {}
        self._frozen = False

    @classmethod
    def from_mapping(cls, handlers: Mapping[str, ToolHandler]) -> "ToolRegistry":
        registry = cls()
        for name, handler in handlers.items():
            registry.register(name, handler)
        return registry

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, name: str, handler: ToolHandler) -> None:
        """Register a handler under a tool name.

        A later registration under the same name replaces the earlier one.

        Raises:
            RegistryError: if the registry is frozen, the name is not a
                valid tool identifier or the handler is not callable.
        """
        if self._frozen:
            raise RegistryError(f"Registry is frozen, cannot register tool: {name}")
        if not validate_tool_name(name):
            raise RegistryError(f"Invalid tool name: {name!r}")
        if not callable(handler):
            raise RegistryError(f"Handler for {name} is not callable")
        if name in self.handlers:
            logger.warning(f"Tool handler replaced: {name}")
        self.handlers[name] = handler
        logger.info(f"Registered tool handler: {name}")

    def tool(self, name: Optional[str] = None):
        """Decorator form of ``register``; defaults to the function name."""

        def decorator(func: ToolHandler) -> ToolHandler:
            self.register(name or func.__name__, func)
            return func

        return decorator

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    def get(self, name: str) -> Optional[ToolHandler]:
        """Return the handler for a tool name, or None."""
        return self.handlers.get(name)

    def names(self) -> List[str]:
        """Registered tool names, in registration order."""
        return list(self.handlers)

    def __contains__(self, name: object) -> bool:
        return name in self.handlers

    def __len__(self) -> int:
        return len(self.handlers)

    def validate(self, tools: Iterable[ToolDefinition], strict: bool = False) -> ValidationReport:
        """Compare registered handlers against compiled tool definitions.

        Raises:
            RegistryMismatchError: in strict mode, when anything differs.
        """
        counts = Counter(tool.name for tool in tools)
        report = ValidationReport(
            unregistered=sorted(name for name in counts if name not in self.handlers),
            orphaned=sorted(name for name in self.handlers if name not in counts),
            duplicates=sorted(name for name, count in counts.items() if count > 1),
        )
        if report.ok:
            logger.info(f"All {len(counts)} compiled tools have handlers")
            return report
        if strict:
            raise RegistryMismatchError(report.unregistered, report.orphaned, report.duplicates)
        for name in report.unregistered:
            logger.warning(f"Compiled tool has no handler: {name}")
        for name in report.orphaned:
            logger.warning(f"Handler has no compiled tool: {name}")
        for name in report.duplicates:
            logger.warning(f"Tool name derived from several operations: {name}")
        return report

    async def execute(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Run a handler; sync handlers are supported as well as coroutines."""
        handler = self.handlers.get(name)
        if handler is None:
            raise KeyError(name)
        result = handler(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result
