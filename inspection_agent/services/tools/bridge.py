"""External tool providers reached over the Model Context Protocol."""
import logging
import os
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from inspection_agent.services.tools.base import (
    ToolDescriptor,
    ToolNotFoundError,
    ToolProviderError,
)

logger = logging.getLogger(__name__)

Connector = Callable[[List[str], AsyncExitStack], Awaitable[ClientSession]]


async def stdio_connector(command: List[str], stack: AsyncExitStack) -> ClientSession:
    """Launch a provider process and open an initialized client session to it."""
    params = StdioServerParameters(command=command[0], args=command[1:], env=dict(os.environ))
    read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
    session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
    await session.initialize()
    return session


class ExternalToolBridge:
    """
    One client session per configured tool provider.

    Provider tools are exposed as ``<provider>_<tool>``. Sessions are opened
    once at startup and only read afterwards, so calls share them freely.
    """

    def __init__(
        self,
        commands: Dict[str, Optional[List[str]]],
        connector: Connector = stdio_connector,
    ):
        self.commands = commands
        self.connector = connector
        self._sessions: Dict[str, ClientSession] = {}
        self._stacks: Dict[str, AsyncExitStack] = {}

    @property
    def provider_names(self) -> List[str]:
        return list(self._sessions)

    async def start(self) -> None:
        """Connect every provider; a provider that fails is skipped."""
        for name, command in self.commands.items():
            if not command:
                logger.warning(
                    f"[MCP] No command found for tool provider: {name} "
                    f"(expected MCP_{name.upper()}_COMMAND)"
                )
                continue

            stack = AsyncExitStack()
            try:
                session = await self.connector(command, stack)
            except Exception as e:
                logger.error(
                    f"[MCP] Failed to connect tool provider {name}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                await self._close_stack(name, stack)
                continue

            self._sessions[name] = session
            self._stacks[name] = stack
            logger.info(f"[MCP] Connected tool provider: {name}")

    async def list_tools(self) -> List[ToolDescriptor]:
        """Live catalog of every connected provider, with prefixed names."""
        descriptors: List[ToolDescriptor] = []
        for name, session in self._sessions.items():
            try:
                result = await session.list_tools()
                provider_tools = [self._descriptor(name, tool) for tool in result.tools]
            except Exception as e:
                logger.error(f"[MCP] Error listing tools from {name}: {type(e).__name__}: {e}")
                continue
            descriptors.extend(provider_tools)
        return descriptors

    @staticmethod
    def _descriptor(provider: str, tool: Any) -> ToolDescriptor:
        # Wire field names, whatever the SDK calls its attributes
        raw = tool.model_dump(mode="json", by_alias=True, exclude_none=True)
        return ToolDescriptor(
            name=f"{provider}_{raw['name']}",
            description=raw.get("description") or "",
            parameters=raw.get("inputSchema") or {"type": "object", "properties": {}},
        )

    def owns(self, qualified_name: str) -> bool:
        try:
            self.resolve(qualified_name)
        except ToolNotFoundError:
            return False
        return True

    def resolve(self, qualified_name: str) -> Tuple[str, str]:
        """Split a prefixed tool name into provider and tool name."""
        matches = [
            name for name in self._sessions
            if qualified_name.startswith(f"{name}_") and len(qualified_name) > len(name) + 1
        ]
        if not matches:
            raise ToolNotFoundError(f"No tool provider found for '{qualified_name}'")
        provider = max(matches, key=len)
        return provider, qualified_name[len(provider) + 1:]

    async def call_tool(self, qualified_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke a provider tool and return the provider's raw result."""
        provider, tool_name = self.resolve(qualified_name)
        session = self._sessions[provider]
        try:
            result = await session.call_tool(tool_name, arguments=arguments)
        except Exception as e:
            raise ToolProviderError(
                f"Tool provider '{provider}' failed on '{tool_name}': {e}"
            ) from e
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    async def stop(self) -> None:
        """Close every provider session, most recently opened first."""
        for name in reversed(list(self._stacks)):
            await self._close_stack(name, self._stacks.pop(name))
            self._sessions.pop(name, None)

    async def _close_stack(self, name: str, stack: AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception as e:
            logger.warning(f"[MCP] Error closing tool provider {name}: {type(e).__name__}: {e}")
