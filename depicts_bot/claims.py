"""
Add a "depicts"-style statement linking a Commons file to a Wikidata item.

Flow for one (item, file) pair
------------------------------
1. Normalise the file title and resolve its page id; the MediaInfo id is
   ``"M" + pageid``. A file without page id raises `ClaimError`.
2. Load the MediaInfo entity (a failed load counts as "no statements") and
   look for an existing statement of the property with the same item value.
   If one exists nothing is written (``ALREADY_PRESENT``).
3. Otherwise submit one statement via `wbeditentity`:
   snaktype ``value``, datavalue type ``wikibase-entityid``, rank ``preferred``,
   summary naming the source item, no baserevid.
4. After a successful write the MediaInfo entity is evicted from the cache and
   the pair is appended to the bot log under the normalised ``File:`` title
   (``ADDED``), so both run variants log a file the same way.
5. A failed write is logged and reported as ``ERROR``; nothing else changes,
   so the pair is simply retried on the next run.
"""
import logging
import re
from typing import Dict, Optional
from urllib.parse import unquote

import requests

from .config import P_IMAGE, SUMMARY_TAG
from .context import BotContext
from .errors import BotError, ClaimError

ADDED = "ADDED"
ALREADY_PRESENT = "ALREADY_PRESENT"
WOULD_ADD = "WOULD_ADD"
ERROR = "ERROR"

QID_RE = re.compile(r"^Q\d+$")


def normalize_file_title(file_value: str) -> Optional[str]:
    """Normalise a Commons file value (URL, ``File:`` title or bare filename) to ``File:Name_with_underscores``."""
    if not file_value:
        return None
    s = str(file_value).strip()
    if not s:
        return None
    if "/File:" in s:
        s = s.split("/File:", 1)[1]
    elif s.startswith("File:"):
        s = s[len("File:"):]
    name = unquote(s).strip().replace(" ", "_")
    return f"File:{name}" if name else None


def item_value(item: str) -> Dict:
    return {"entity-type": "item", "numeric-id": int(item[1:]), "id": item}


def build_item_claim(property_id: str, item: str, rank: str = "preferred") -> Dict:
    return {
        "mainsnak": {
            "snaktype": "value",
            "property": property_id,
            "datavalue": {"value": item_value(item), "type": "wikibase-entityid"},
        },
        "type": "statement",
        "rank": rank,
    }


def build_summary(item: str) -> str:
    return f"Used with {P_IMAGE} on Wikidata [[:d:{item}|]] {SUMMARY_TAG}"


def media_id_for_file(ctx: BotContext, filename: str) -> str:
    title = normalize_file_title(filename)
    if not title:
        raise ClaimError(f"Not a file title: {filename!r}")
    try:
        page_id = ctx.commons.get_page_id(title)
    except (BotError, LookupError, requests.RequestException) as e:
        raise ClaimError(f"Could not get page ID for {title}: {e}") from e
    return f"M{page_id}"


def has_statement(ctx: BotContext, media_id: str, property_id: str, item: str) -> bool:
    entity = ctx.media.load_entity(media_id)
    if entity is None:
        return False
    return entity.has_target_entity(property_id, item)


def add_target_prominent(ctx: BotContext, item: str, filename: str,
                         property_id: Optional[str] = None) -> str:
    """
    Add ``property_id = item`` (rank preferred) to the MediaInfo entity of `filename`.

    Returns one of ``ADDED``, ``ALREADY_PRESENT``, ``WOULD_ADD`` (dry run) or ``ERROR``.

    Raises:
        ClaimError: if the file's page id cannot be resolved.
    """
    property_id = property_id or ctx.property
    if not QID_RE.match(item or ""):
        raise ClaimError(f"Invalid item id {item!r}")
    media_id = media_id_for_file(ctx, filename)

    if has_statement(ctx, media_id, property_id, item):
        logging.debug("%s already has %s=%s", media_id, property_id, item)
        return ALREADY_PRESENT

    claim = build_item_claim(property_id, item)
    summary = build_summary(item)

    if ctx.dry_run:
        logging.info("[DRY-RUN] WOULD ADD %s=%s to %s (%s)", property_id, item, media_id, filename)
        return WOULD_ADD

    try:
        ctx.commons.edit_entity(media_id, {"claims": [claim]}, summary=summary, baserevid=None)
    except (BotError, requests.RequestException) as e:
        logging.error("Error editing %s (%s=%s on %s): %s", media_id, property_id, item, filename, e)
        return ERROR

    ctx.media.remove(media_id)
    ctx.bot_log.append_pair(property_id, item, normalize_file_title(filename))
    logging.info("[ADDED] %s=%s on https://commons.wikimedia.org/entity/%s (%s)",
                 property_id, item, media_id, filename)
    return ADDED
