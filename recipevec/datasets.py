from __future__ import annotations

"""
Dataset adapters for the public recipe corpora.

Each supported source has an adapter that turns the raw downloaded
payload into canonical :class:`~recipevec.config.Recipe` records.  The
set of sources is closed and selected through :class:`SourceKind`:

* ``openrecipes`` - gzipped newline-delimited JSON, flat objects with
  ``name``/``url``/``ingredients``/``instructions``.  ``ingredients``
  can be a single string or a list of lines.
* ``wikibooks`` - a JSON array whose rows nest the recipe one level
  down in ``recipe_data``; ingredients and instructions are rebuilt from
  tagged ``text_lines`` sections.

Fetching uses ``httpx``.  Any fetch or parse failure is fatal for the
build; the sources are downloaded concurrently and joined in priority
order before de-duplication.
"""

import enum
import gzip
import json
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional

import httpx
from loguru import logger

from .config import (
    FETCH_WORKERS,
    HTTP_CONNECT_TIMEOUT,
    HTTP_MAX_REDIRECTS,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    MAX_OPENRECIPES,
    MAX_WIKIBOOKS,
    OPEN_RECIPES_URL,
    WIKIBOOKS_JSON_URL,
    Recipe,
)
from .errors import FetchError, ParseError
from .normalize import build_ingredients_lines, normalize_text
from .tagging import infer_tags


class SourceKind(str, enum.Enum):
    OPENRECIPES = "openrecipes"
    WIKIBOOKS = "wikibooks"


# First source wins de-duplication ties
SOURCE_PRIORITY: List[SourceKind] = [SourceKind.OPENRECIPES, SourceKind.WIKIBOOKS]

DEFAULT_LIMITS: Dict[SourceKind, int] = {
    SourceKind.OPENRECIPES: MAX_OPENRECIPES,
    SourceKind.WIKIBOOKS: MAX_WIKIBOOKS,
}


# ---------------------------
# Fetch / decode helpers
# ---------------------------

def http_client() -> httpx.Client:
    """
    Construct a configured HTTP client for dataset downloads.
    """
    return httpx.Client(
        headers={"User-Agent": HTTP_USER_AGENT},
        follow_redirects=True,
        timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
        max_redirects=HTTP_MAX_REDIRECTS,
    )


def fetch_bytes(url: str, client: Optional[httpx.Client] = None) -> bytes:
    """
    Download ``url`` and return the raw body.

    Raises ``FetchError`` on HTTP status >= 400 or any transport error.
    Retries are left to the caller.
    """
    own_client = client is None
    client = client or http_client()
    try:
        logger.info("Fetching dataset: {}", url)
        r = client.get(url)
        if r.status_code >= 400:
            raise FetchError(url, status=r.status_code)
        logger.info("Fetched {} bytes from {}", len(r.content), url)
        return r.content
    except httpx.HTTPError as e:
        raise FetchError(url, reason=str(e)) from e
    finally:
        if own_client:
            client.close()


def maybe_gunzip(raw: bytes) -> bytes:
    """Decompress gzip payloads (detected by magic bytes); pass others through."""
    if raw[:2] == b"\x1f\x8b":
        return gzip.decompress(raw)
    return raw


def parse_json_or_ndjson(text: str, label: str) -> Any:
    """
    Parse ``text`` as a JSON document, falling back to newline-delimited
    JSON.

    In NDJSON mode lines that fail to parse are skipped.  The result is
    accepted only if at least one line parsed; otherwise ``ParseError``
    names the source.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    rows: List[Any] = []
    skipped = 0
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError:
            skipped += 1
    if not rows:
        raise ParseError(label)
    if skipped:
        logger.warning("{}: skipped {} non-JSON lines", label, skipped)
    logger.info("{}: parsed {} NDJSON rows", label, len(rows))
    return rows


def _as_rows(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    # a single JSON object is one row
    return [data]


# ---------------------------
# Adapters
# ---------------------------

class DatasetAdapter:
    """
    Capability: parse one source's raw payload into canonical records.

    Subclasses implement :meth:`extract_fields`, returning the raw
    ``(title, url, ingredients, instructions)`` strings for a row or
    ``None`` to skip it.  Shared shaping (normalization, skip rule,
    ids, tags, ingredient lines, count cap) lives here.
    """

    kind: SourceKind
    label: str
    url: str

    def decode(self, payload: bytes) -> List[Any]:
        text = maybe_gunzip(payload).decode("utf-8", errors="replace")
        return _as_rows(parse_json_or_ndjson(text, self.label))

    def extract_fields(self, row: Any) -> Optional[Dict[str, str]]:
        raise NotImplementedError

    def parse(self, payload: bytes, limit: Optional[int] = None) -> List[Recipe]:
        rows = self.decode(payload)
        out: List[Recipe] = []
        skipped = 0
        for row in rows:
            if limit is not None and len(out) >= limit:
                break
            fields = self.extract_fields(row)
            if fields is None:
                skipped += 1
                continue
            title = normalize_text(fields.get("title"))
            ingredients = normalize_text(fields.get("ingredients"))
            instructions = normalize_text(fields.get("instructions"))
            if not title and not instructions:
                skipped += 1
                continue
            out.append(
                Recipe(
                    id=f"{self.kind.value}_{len(out)}",
                    source=self.kind.value,
                    title=title,
                    url=str(fields.get("url") or ""),
                    ingredients=ingredients,
                    # line structure is taken from the raw block
                    ingredients_lines=build_ingredients_lines(fields.get("ingredients")),
                    instructions=instructions,
                    tags=infer_tags(title, ingredients, instructions),
                )
            )
        logger.info(
            "{}: {} records from {} rows (skipped {})",
            self.label, len(out), len(rows), skipped,
        )
        return out


class OpenRecipesAdapter(DatasetAdapter):
    kind = SourceKind.OPENRECIPES
    label = "Open Recipes"
    url = OPEN_RECIPES_URL

    def extract_fields(self, row: Any) -> Optional[Dict[str, str]]:
        if not isinstance(row, Mapping):
            return None
        ingredients = row.get("ingredients")
        if isinstance(ingredients, list):
            ingredients = "\n".join(str(x) for x in ingredients if x is not None)
        return {
            "title": row.get("name") or "",
            "url": row.get("url") or "",
            "ingredients": ingredients or "",
            "instructions": row.get("instructions") or "",
        }


INGREDIENT_SECTION_RE = re.compile(r"ingredient", re.IGNORECASE)
PROCEDURE_SECTION_RE = re.compile(r"procedure|directions|method", re.IGNORECASE)


def _join_section_lines(lines: Iterable[Mapping], pattern: Optional[re.Pattern] = None) -> str:
    picked = []
    for ln in lines:
        if pattern is not None and not pattern.search(str(ln.get("section") or "")):
            continue
        text = ln.get("text")
        if text:
            picked.append(str(text))
    return "\n".join(picked)


class WikibooksAdapter(DatasetAdapter):
    kind = SourceKind.WIKIBOOKS
    label = "Wikibooks Cookbook"
    url = WIKIBOOKS_JSON_URL

    def extract_fields(self, row: Any) -> Optional[Dict[str, str]]:
        if not isinstance(row, Mapping):
            return None
        rd = row.get("recipe_data") or row
        if not isinstance(rd, Mapping):
            return None
        raw_lines = rd.get("text_lines")
        lines = [ln for ln in raw_lines if isinstance(ln, Mapping)] if isinstance(raw_lines, list) else []

        ingredients = _join_section_lines(lines, INGREDIENT_SECTION_RE)
        procedure = _join_section_lines(lines, PROCEDURE_SECTION_RE)
        # no recognised procedure section: keep every line
        instructions = procedure or _join_section_lines(lines)
        return {
            "title": rd.get("title") or "",
            "url": rd.get("url") or "",
            "ingredients": ingredients,
            "instructions": instructions,
        }


ADAPTERS: Dict[SourceKind, DatasetAdapter] = {
    SourceKind.OPENRECIPES: OpenRecipesAdapter(),
    SourceKind.WIKIBOOKS: WikibooksAdapter(),
}


# ---------------------------
# Loading
# ---------------------------

def load_source(
    kind: SourceKind,
    limit: Optional[int] = None,
    client: Optional[httpx.Client] = None,
) -> List[Recipe]:
    """Fetch and parse a single source."""
    adapter = ADAPTERS[SourceKind(kind)]
    logger.info("Downloading {}", adapter.label)
    payload = fetch_bytes(adapter.url, client=client)
    return adapter.parse(payload, limit=limit)


def load_all_sources(
    limits: Optional[Mapping[SourceKind, int]] = None,
    client: Optional[httpx.Client] = None,
) -> List[List[Recipe]]:
    """
    Fetch every source concurrently and return their record lists in
    ``SOURCE_PRIORITY`` order.

    Sources share no mutable state.  The first failure is re-raised
    after all downloads settle, so no partial corpus is produced.
    """
    limits = {**DEFAULT_LIMITS, **(limits or {})}
    with ThreadPoolExecutor(max_workers=FETCH_WORKERS) as pool:
        futures = [
            pool.submit(load_source, kind, limits.get(kind), client)
            for kind in SOURCE_PRIORITY
        ]
        # result() re-raises FetchError / ParseError from the worker
        return [f.result() for f in futures]


if __name__ == "__main__":
    for records in load_all_sources({k: 5 for k in SOURCE_PRIORITY}):
        for r in records:
            print(r.id, "|", r.title, "|", r.tags)
