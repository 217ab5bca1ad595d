"""
MCP Tool Definitions

The tab command channels exposed as MCP tools, for agents that want to
drive tabs without an extension runtime. The MCP client is a caller with
no owning window.
"""

from typing import Any, Dict, List, Optional

from .errors import TabHubError


def register_tab_tools(mcp, gateway):
    """
    Register tab command tools.

    Args:
        mcp: FastMCP instance
        gateway: HostGateway bridging calls onto the control loop
    """

    def call(channel: str, *args: Any) -> Any:
        try:
            return gateway.invoke(channel, None, list(args))
        except TabHubError as e:
            return e.to_dict()

    @mcp.tool()
    def tabs_get(tab_id: int) -> Dict:
        """Snapshot of one tab, or {"id": -1} if it does not exist."""
        return call("tabs.get", tab_id)

    @mcp.tool()
    def tabs_query(active: Optional[bool] = None) -> List[Dict]:
        """List tabs, optionally only the active (or inactive) ones."""
        query = {} if active is None else {"active": active}
        return call("tabs.query", query)

    @mcp.tool()
    def tabs_create(url: str) -> Any:
        """Open url in a new window. Returns the new tab when known."""
        return call("tabs.create", {"url": url})

    @mcp.tool()
    def tabs_update(tab_id: int, url: Optional[str] = None, muted: Optional[bool] = None) -> Any:
        """Navigate a tab and/or set its muted state."""
        props: Dict[str, Any] = {}
        if url is not None:
            props["url"] = url
        if muted is not None:
            props["muted"] = muted
        return call("tabs.update", tab_id, props)

    @mcp.tool()
    def tabs_reload(tab_id: int, bypass_cache: bool = False) -> Any:
        """Reload a tab, optionally bypassing the cache."""
        return call("tabs.reload", tab_id, {"bypassCache": bypass_cache})

    @mcp.tool()
    def tabs_insert_css(tab_id: int, code: str) -> Any:
        """Inject a stylesheet into a tab."""
        return call("tabs.insertCSS", tab_id, {"code": code})

    @mcp.tool()
    def windows_create(url: str) -> Any:
        """Open a new top-level window."""
        return call("windows.create", {"url": url})


def create_mcp_server(gateway):
    """FastMCP server with the tab tools registered."""
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP(
        name="tabhub",
        instructions="Query and control browser tabs through the chrome.tabs command set",
    )
    register_tab_tools(mcp, gateway)
    return mcp
