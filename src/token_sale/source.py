from __future__ import annotations

from typing import Any, List, Optional

import httpx

from .allowlist import AllowListEntry, entries_from_csv, entries_from_json
from .project_constants import TOKEN_DECIMALS


class AllowListClient:
    """Fetches a published allow-list (JSON or CSV) over HTTP."""

    def __init__(
        self,
        timeout_s: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def fetch_entries(self, url: str, decimals: int = TOKEN_DECIMALS) -> List[AllowListEntry]:
        resp = self.client.get(url)
        resp.raise_for_status()

        content_type = resp.headers.get("content-type", "")
        text = resp.text.strip()
        if "json" in content_type or text[:1] in ("[", "{"):
            try:
                doc: Any = resp.json()
            except ValueError as e:
                raise RuntimeError(f"Allow-list at {url} is not valid JSON: {e}") from e
            return entries_from_json(doc, decimals)
        return entries_from_csv(text, decimals)
