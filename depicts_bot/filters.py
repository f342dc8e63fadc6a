"""
Filter stages for the candidate pipeline.

Every stage has the signature ``stage(ctx, candidates) -> candidates`` and can
be combined in any order with `apply_filters`. Stages may mutate candidates
(redirect the item, fill in the image) and drop the ones they reject.
"""
import logging
from typing import Callable, List, Sequence

from .candidates import Candidate
from .claims import normalize_file_title
from .config import ARTWORK_TEMPLATE, P_IMAGE, P_INSTANCE_OF, P_MAIN_TOPIC, Q_WIKIMEDIA_CATEGORY
from .context import BotContext

Stage = Callable[[BotContext, List[Candidate]], List[Candidate]]


def apply_filters(ctx: BotContext, candidates: List[Candidate], stages: Sequence[Stage]) -> List[Candidate]:
    for stage in stages:
        before = len(candidates)
        candidates = stage(ctx, candidates)
        logging.info("%s: %d -> %d candidates", getattr(stage, "__name__", stage), before, len(candidates))
    return candidates


def drop_logged(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """
    Drop pairs already in the bot log.

    The image is looked up by its normalised ``File:`` title, the form
    `claims.add_target_prominent` logs, so ``"Rathaus Kassel.jpg"`` from P18 and
    ``"Rathaus_Kassel.jpg"`` from a query URL hit the same record. Candidates
    without an image yet are kept.
    """
    return [
        c for c in candidates
        if not (c.item and c.image and ctx.bot_log.contains([c.item, normalize_file_title(c.image)]))
    ]


def resolve_main_topic(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """
    Replace category items by their main topic.

    Items that are an instance of "Wikimedia category" are redirected to the
    first item value of P301 (category's main topic), which is then loaded as
    well; all other candidates are discarded.
    """
    ctx.items.load_entities(c.item for c in candidates if c.item)

    to_load = []
    kept = []
    for c in candidates:
        entity = ctx.items.get(c.item)
        if entity is None or not entity.has_target_entity(P_INSTANCE_OF, Q_WIKIMEDIA_CATEGORY):
            continue
        topics = entity.entity_values(P_MAIN_TOPIC)
        if not topics:
            continue
        logging.debug("%s (%s) => %s", c.item, c.source, topics[0])
        c.item = topics[0]
        to_load.append(c.item)
        kept.append(c)

    ctx.items.load_entities(to_load)
    return kept


def resolve_image(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """Set each candidate's image to the first P18 string value of its item."""
    kept = []
    for c in candidates:
        entity = ctx.items.get(c.item)
        images = entity.string_values(P_IMAGE) if entity is not None else []
        if not images:
            continue
        c.image = images[0]
        kept.append(c)
    return kept


def revalidate_type(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """Re-fetch items and drop any that are (still) a Wikimedia category or vanished."""
    ctx.items.refresh(c.item for c in candidates if c.item)
    kept = []
    for c in candidates:
        entity = ctx.items.get(c.item)
        if entity is None or entity.has_target_entity(P_INSTANCE_OF, Q_WIKIMEDIA_CATEGORY):
            continue
        kept.append(c)
    return kept


def drop_artwork(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """Drop files whose page uses {{Artwork}}."""
    kept = []
    for c in candidates:
        title = normalize_file_title(c.image or "")
        if title and ctx.commons.page_contains_template(title, ARTWORK_TEMPLATE):
            logging.debug("%s is an artwork, skipping", title)
            continue
        kept.append(c)
    return kept


def make_free_page_image_filter(server: str) -> Stage:
    """
    Build a stage that keeps a candidate only when the free page image of its
    article on `server` is exactly the candidate's image. Both names use
    underscores for spaces before comparing; case is kept.
    """
    def require_free_page_image_match(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
        wiki = ctx.wiki(server)
        kept = []
        for c in candidates:
            if not c.article or not c.image:
                continue
            page_image = wiki.get_free_page_image(c.article)
            c.page_image = page_image.replace(" ", "_") if page_image else None
            if c.page_image is None or c.page_image != c.image:
                continue
            kept.append(c)
        return kept

    return require_free_page_image_match


def drop_incomplete(ctx: BotContext, candidates: List[Candidate]) -> List[Candidate]:
    """Last stage of every chain: only candidates with both item and image reach submission."""
    return [c for c in candidates if c.complete]


CATEGORY_SCAN_STAGES: List[Stage] = [
    resolve_main_topic,
    resolve_image,
    drop_logged,
    revalidate_type,
    drop_artwork,
    drop_incomplete,
]


def structured_query_stages(server: str) -> List[Stage]:
    return [
        drop_logged,
        make_free_page_image_filter(server),
        drop_artwork,
        drop_incomplete,
    ]
