"""Host-side context handed to a run.

``NodeExecutionContext`` carries what the surrounding workflow engine knows about
the current execution (ids, mode, continue-on-fail, static data, credentials) and
``HostHelpers`` provides the authenticated HTTP helpers that custom scripts may
call. Both are plain objects so that tests and the CLI can build them directly.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from browser_node.constants import ExecutionMode
from browser_node.utils import get_logger

logger = get_logger("browser_node.host")

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_MAX_PAGES = 100


class HostHelpers:
    """Authenticated HTTP helpers exposed to custom scripts.

    Credentials are keyed by type name. Each entry may contain ``headers``
    (merged into the request), ``token`` (sent as a bearer token) or
    ``query`` (merged into the query string).
    """

    def __init__(
        self,
        credentials: Optional[Dict[str, Dict[str, Any]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self._credentials = credentials or {}
        self._transport = transport
        self._timeout = timeout

    def _authenticate(self, credentials_type: str, options: Dict[str, Any]) -> Dict[str, Any]:
        if credentials_type not in self._credentials:
            raise KeyError(f"No credentials of type '{credentials_type}' are available to this node")
        credential = self._credentials[credentials_type]
        request = copy.deepcopy(options)
        headers = dict(request.get("headers") or {})
        headers.update(credential.get("headers") or {})
        if credential.get("token"):
            headers["Authorization"] = f"Bearer {credential['token']}"
        request["headers"] = headers
        if credential.get("query"):
            params = dict(request.get("params") or request.get("qs") or {})
            params.update(credential["query"])
            request["params"] = params
        return request

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout, follow_redirects=True)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            return response.json()
        return response.text

    async def _send(self, client: httpx.AsyncClient, request: Dict[str, Any]) -> httpx.Response:
        response = await client.request(
            request.get("method", "GET").upper(),
            request["url"],
            headers=request.get("headers"),
            params=request.get("params") or request.get("qs"),
            json=request.get("json"),
            content=request.get("body"),
        )
        response.raise_for_status()
        return response

    async def http_request_with_authentication(self, credentials_type: str, options: Dict[str, Any]) -> Any:
        """Send one request with the credential applied and return the decoded body."""
        request = self._authenticate(credentials_type, options)
        async with self._client() as client:
            response = await self._send(client, request)
            return self._decode(response)

    async def request_with_authentication_paginated(
        self,
        credentials_type: str,
        options: Dict[str, Any],
        pagination: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """Follow ``next`` links and collect every page body.

        Args:
            credentials_type: Credential type name
            options: Request options for the first page
            pagination: ``next_key`` (JSON key or ``link`` for the Link header),
                ``results_key`` (list to collect from each page), ``max_pages``

        Returns:
            Collected results (the ``results_key`` lists concatenated, or the raw page bodies)
        """
        pagination = pagination or {}
        next_key = pagination.get("next_key", "next")
        results_key = pagination.get("results_key")
        max_pages = pagination.get("max_pages", DEFAULT_MAX_PAGES)

        request = self._authenticate(credentials_type, options)
        collected: List[Any] = []
        async with self._client() as client:
            for page_number in range(max_pages):
                response = await self._send(client, request)
                body = self._decode(response)
                if results_key and isinstance(body, dict):
                    collected.extend(body.get(results_key) or [])
                else:
                    collected.append(body)

                if next_key == "link":
                    next_url = response.links.get("next", {}).get("url")
                else:
                    next_url = body.get(next_key) if isinstance(body, dict) else None
                if not next_url:
                    break
                request = {**request, "url": str(next_url), "params": None, "qs": None}
            else:
                logger.warning(
                    f"Pagination stopped after {max_pages} pages",
                    emoji_key="warning",
                    url=options.get("url"),
                )
        return collected


@dataclass
class NodeExecutionContext:
    """What the host engine knows about the current node execution."""
    workflow_id: str = "standalone"
    node_name: str = "Browser"
    mode: ExecutionMode = ExecutionMode.CLI
    continue_on_fail: bool = False
    node_parameters: Dict[str, Any] = field(default_factory=dict)
    static_data: Dict[str, Any] = field(default_factory=dict)
    helpers: HostHelpers = field(default_factory=HostHelpers)
    send_message_to_ui: Optional[Callable[..., Any]] = None

    def get_node_parameter(self, name: str, fallback: Any = None) -> Any:
        """Return a node-level parameter."""
        return self.node_parameters.get(name, fallback)

    def get_workflow_static_data(self, kind: str = "global") -> Dict[str, Any]:
        """Mutable static data shared across executions of the workflow."""
        return self.static_data.setdefault(kind, {})
