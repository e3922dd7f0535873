from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Sequence

import httpx

from collaborators import AutocompleteCandidate, AutocompleteProvider


class AutocompleteClient:
    def __init__(
        self,
        url: str,
        timeout_s: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)
        self._owns_client = client is None

    async def fetch_candidates(self, keyword: str) -> list[AutocompleteCandidate]:
        response = await self._client.get(self._url, params={"keyword": keyword})
        response.raise_for_status()
        return self._parse_candidates(response.json())

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _parse_candidates(payload: Any) -> list[AutocompleteCandidate]:
        if not isinstance(payload, dict):
            return []
        raw_candidates = payload.get("candidates") or []
        candidates: list[AutocompleteCandidate] = []
        for raw in raw_candidates:
            if not isinstance(raw, dict):
                continue
            key = str(raw.get("tag_name") or "").strip()
            if not key:
                continue
            label = str(raw.get("tag_translation") or "").strip()
            candidates.append(AutocompleteCandidate(key=key, label=label))
        return candidates


class AutocompleteCoalescer:
    def __init__(
        self,
        provider: AutocompleteProvider,
        read_input: Callable[[], str],
        on_results: Callable[[], None],
    ) -> None:
        self._provider = provider
        self._read_input = read_input
        self._on_results = on_results
        self._task: Optional[asyncio.Task[None]] = None
        self._query: Optional[str] = None
        self._pending_query: Optional[str] = None
        self._most_recent_search: Optional[str] = None
        self._results: tuple[AutocompleteCandidate, ...] = ()

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    @property
    def query(self) -> Optional[str]:
        return self._query

    @property
    def pending_query(self) -> Optional[str]:
        return self._pending_query

    @property
    def most_recent_search(self) -> Optional[str]:
        return self._most_recent_search

    @property
    def results(self) -> tuple[AutocompleteCandidate, ...]:
        return self._results

    def on_query_changed(self, text: str) -> None:
        query = (text or "").strip()
        if not query:
            self.cancel()
            self._complete("", ())
            return
        if query == self._most_recent_search:
            return
        if self._task is not None:
            logging.info("autocomplete_delayed query=%r in_flight=%r", query, self._query)
            self._pending_query = query
            return
        self._query = query
        self._task = asyncio.get_running_loop().create_task(self._request(query), name="tag-autocomplete")

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        logging.info("autocomplete_cancel query=%r", self._query)
        self._query = None
        self._pending_query = None
        task.cancel()

    async def _request(self, query: str) -> None:
        task = asyncio.current_task()
        remember = True
        try:
            candidates: Sequence[AutocompleteCandidate] = await self._provider.fetch_candidates(query)
        except asyncio.CancelledError:
            logging.info("autocomplete_aborted query=%r", query)
            return
        except Exception as exc:  # noqa: BLE001 - network boundary
            logging.warning("autocomplete_failed query=%r error=%r", query, exc)
            candidates = ()
            remember = False
        if self._task is not task:
            logging.debug("autocomplete_discarded query=%r", query)
            return
        self._complete(query, tuple(candidates), remember=remember)

    def _complete(
        self,
        query: str,
        candidates: tuple[AutocompleteCandidate, ...],
        remember: bool = True,
    ) -> None:
        self._task = None
        self._query = None
        pending, self._pending_query = self._pending_query, None
        self._most_recent_search = query if remember else None
        self._results = candidates
        self._on_results()

        if pending is not None and pending != query:
            latest = (self._read_input() or "").strip()
            logging.info("autocomplete_resume completed=%r latest=%r", query, latest)
            self.on_query_changed(latest)
