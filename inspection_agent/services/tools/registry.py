"""Tool registry."""
import logging
from typing import Any, Dict, List, Optional

from inspection_agent.services.tools.base import (
    Tool,
    ToolDescriptor,
    ToolExecutionContext,
    ToolNotFoundError,
)
from inspection_agent.services.tools.bridge import ExternalToolBridge

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    A single flat namespace over local tools and external provider tools.

    Built once at startup and never mutated afterwards. Local tools are
    resolved first; any other name is routed to the provider whose
    identifier prefixes it.
    """

    def __init__(self, local_tools: List[Tool], bridge: Optional[ExternalToolBridge] = None):
        self._local: Dict[str, Tool] = {}
        for tool in local_tools:
            if tool.name in self._local:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._local[tool.name] = tool
        self.bridge = bridge

    @property
    def local_tool_names(self) -> List[str]:
        return list(self._local)

    async def catalog(self) -> List[ToolDescriptor]:
        """Local tools plus the live catalog of every connected provider."""
        descriptors = [tool.descriptor for tool in self._local.values()]
        if self.bridge is not None:
            try:
                descriptors.extend(await self.bridge.list_tools())
            except Exception as e:
                logger.error(
                    f"[TOOLS] Provider catalog unavailable, offering local tools only: "
                    f"{type(e).__name__}: {e}",
                    exc_info=True,
                )
        return descriptors

    async def to_realtime_schema(self) -> List[Dict[str, Any]]:
        return [descriptor.to_realtime_schema() for descriptor in await self.catalog()]

    async def dispatch(
        self, name: str, arguments: Dict[str, Any], context: ToolExecutionContext
    ) -> Dict[str, Any]:
        """
        Invoke a tool by its qualified name.

        Raises:
            ToolNotFoundError: if neither a local tool nor a provider matches
            ToolProviderError: if the provider call fails
        """
        tool = self._local.get(name)
        if tool is not None:
            return await tool.execute(arguments, context)
        if self.bridge is not None and self.bridge.owns(name):
            return await self.bridge.call_tool(name, arguments)
        raise ToolNotFoundError(f"Tool '{name}' not found")
