"""
Candidate discovery: PetScan category scans and Wikidata SPARQL queries.

Both sources fail fast with `ResponseShapeError` when the remote answer does
not have the expected array; individual rows that lack a field are skipped.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import unquote

from .errors import ResponseShapeError
from .mw import MediaWikiApi, SparqlEndpoint

ENTITY_URI_RE = re.compile(r"/entity/([QPLM]\d+)$")

SPARQL_TEMPLATE = (
    "SELECT ?q ?image ?article {{ {part} . ?q wdt:P18 ?image . "
    "?article schema:about ?q ; schema:isPartOf <https://{server}/> }}"
)


@dataclass
class Candidate:
    """An (item, image) pair on its way through the filter chain."""
    source: str
    item: Optional[str] = None
    image: Optional[str] = None
    article: Optional[str] = None
    page_image: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.item) and bool(self.image)


def percent_decode_title(s: str) -> str:
    """Percent-decode a title and use underscores for spaces (``"A%20b"`` → ``"A_b"``).

    Raises:
        ResponseShapeError: if the decoded bytes are not UTF-8.
    """
    try:
        decoded = unquote(s, errors="strict")
    except UnicodeDecodeError as e:
        raise ResponseShapeError("percent_decode_title", f"{s!r} is not utf8") from e
    return decoded.replace(" ", "_")


def last_path_segment(uri: str) -> str:
    return uri.rstrip("/").split("/")[-1]


def article_title_from_url(uri: str) -> str:
    """Title part of an article URL; everything after ``/wiki/``, since titles may contain ``/``."""
    if "/wiki/" in uri:
        return uri.split("/wiki/", 1)[1]
    return last_path_segment(uri)


def extract_entity_from_uri(uri: str) -> Optional[str]:
    """``http://www.wikidata.org/entity/Q42`` → ``Q42``."""
    m = ENTITY_URI_RE.search(uri or "")
    return m.group(1) if m else None


def build_sparql(sparql_part: str, server: str) -> str:
    return SPARQL_TEMPLATE.format(part=sparql_part, server=server)


# ====================================================================
#  Functions: PetScan category scan
# ====================================================================

def parse_petscan_result(payload: object, source: str = "petscan") -> List[Candidate]:
    """Decode a PetScan JSON answer into one candidate per (category, item) row."""
    try:
        rows = payload["*"][0]["a"]["*"]
    except (KeyError, IndexError, TypeError) as e:
        raise ResponseShapeError(source, "PetScan query failed: no *[0].a.* array", payload) from e
    if not isinstance(rows, list):
        raise ResponseShapeError(source, "PetScan query failed: *[0].a.* is not an array", payload)

    out: List[Candidate] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        title, q = row.get("title"), row.get("q")
        if isinstance(title, str) and isinstance(q, str) and title and q:
            out.append(Candidate(source=title, item=q))
    return out


def category_scan_candidates(client: MediaWikiApi, url: str) -> List[Candidate]:
    payload = client.get_json(url)
    candidates = parse_petscan_result(payload, source=url)
    logging.info("PetScan returned %d category/item pairs", len(candidates))
    return candidates


# ====================================================================
#  Functions: Wikidata structured query
# ====================================================================

def _binding_value(binding: Dict, name: str) -> Optional[str]:
    cell = binding.get(name)
    value = cell.get("value") if isinstance(cell, dict) else None
    return value if isinstance(value, str) and value else None


def parse_sparql_bindings(payload: object, source: str = "sparql") -> List[Candidate]:
    """Decode ``?q ?image ?article`` bindings into candidates with normalised titles."""
    bindings = None
    if isinstance(payload, dict):
        bindings = (payload.get("results") or {}).get("bindings")
    if not isinstance(bindings, list):
        raise ResponseShapeError(source, "No bindings in SPARQL results", payload)

    out: List[Candidate] = []
    for b in bindings:
        if not isinstance(b, dict):
            continue
        q, image, article = (_binding_value(b, k) for k in ("q", "image", "article"))
        if not (q and image and article):
            continue
        item = extract_entity_from_uri(q)
        if not item:
            continue
        out.append(Candidate(
            source=source,
            item=item,
            image=percent_decode_title(last_path_segment(image)),
            article=percent_decode_title(article_title_from_url(article)),
        ))
    return out


def structured_query_candidates(sparql: SparqlEndpoint, sparql_part: str, server: str) -> List[Candidate]:
    query = build_sparql(sparql_part, server)
    logging.debug("SPARQL: %s", query)
    candidates = parse_sparql_bindings(sparql.query(query), source=f"sparql:{server}")
    logging.info("SPARQL returned %d item/image/article rows for %s", len(candidates), server)
    return candidates
