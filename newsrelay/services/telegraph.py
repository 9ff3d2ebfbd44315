from __future__ import annotations

import logging

import requests

from newsrelay.models.errors import PublishError
from newsrelay.services.markup import (
    TELEGRAPH_CONTENT_BUDGET,
    Node,
    node_size,
    serialize_nodes,
    truncate_nodes,
)

logger = logging.getLogger(__name__)

TELEGRAPH_API_URL = "https://api.telegra.ph/{method}"
MAX_TITLE_LENGTH = 256


class TelegraphPublisher:
    """Long-form pages on telegra.ph. An account is created on first use when no token is given."""

    def __init__(
        self,
        access_token: str = "",
        short_name: str = "newsrelay",
        author_name: str = "",
        session: requests.Session | None = None,
        timeout: float = 30.0,
        content_budget: int = TELEGRAPH_CONTENT_BUDGET,
    ) -> None:
        self.access_token = access_token
        self.short_name = short_name
        self.author_name = author_name
        self.session = session or requests.Session()
        self.timeout = timeout
        self.content_budget = content_budget

    def _call(self, method: str, payload: dict) -> dict:
        url = TELEGRAPH_API_URL.format(method=method)
        try:
            r = self.session.post(url, data=payload, timeout=self.timeout)
            body = r.json()
        except requests.RequestException as e:
            raise PublishError(f"Telegraph {method} request failed: {e}") from e
        except ValueError as e:
            raise PublishError(f"Telegraph {method} returned invalid JSON: {e}") from e

        if not isinstance(body, dict) or not body.get("ok"):
            error = body.get("error") if isinstance(body, dict) else body
            logger.error("Telegraph error on %s: %s", method, error)
            raise PublishError(f"Telegraph {method} failed: {error}")
        return body.get("result") or {}

    def ensure_account(self) -> str:
        if self.access_token:
            return self.access_token
        payload = {"short_name": self.short_name}
        if self.author_name:
            payload["author_name"] = self.author_name
        result = self._call("createAccount", payload)
        token = result.get("access_token")
        if not token:
            raise PublishError("Telegraph createAccount returned no access_token")
        logger.info("Created Telegraph account '%s'", self.short_name)
        self.access_token = token
        return token

    def publish_long(self, nodes: list[Node], title: str) -> str:
        token = self.ensure_account()
        content = truncate_nodes(nodes, self.content_budget)
        if content is not nodes:
            logger.warning("Long-form content truncated to %d bytes", node_size(content))

        payload = {
            "access_token": token,
            "title": (title.strip() or "Untitled")[:MAX_TITLE_LENGTH],
            "content": serialize_nodes(content),
            "return_content": "false",
        }
        if self.author_name:
            payload["author_name"] = self.author_name

        result = self._call("createPage", payload)
        url = result.get("url")
        if not url:
            raise PublishError("Telegraph createPage returned no url")
        logger.info("Telegraph page created: %s", url)
        return url
