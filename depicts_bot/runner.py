"""
Entry point of the Commons depicts bot.

Two run variants share the same submission step:

* ``structured-query``: Wikidata items matching ``SPARQL_PART`` that have an
  image (P18) and an article on ``SIBLING_WIKI``. A file gets a depicts
  statement only when the article's free page image is that same file.
* ``category-scan``: Commons categories from a PetScan query, mapped to their
  Wikidata category item, then to the category's main topic (P301) and that
  topic's image (P18).

Configuration is read from the environment / `.env` and the credentials ini
file; see `depicts_bot.config`.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from dotenv import load_dotenv
from tqdm.auto import tqdm

from . import claims
from .candidates import Candidate, category_scan_candidates, structured_query_candidates
from .config import MODE_CATEGORY_SCAN, BotConfig, build_config
from .context import BotContext
from .errors import BotError, ClaimError
from .filters import CATEGORY_SCAN_STAGES, apply_filters, structured_query_stages
from .logsetup import setup_tqdm_logging


# ====================================================================
#  Functions: submission & run variants
# ====================================================================
@dataclass
class RunSummary:
    candidates: int = 0
    added: int = 0
    already_present: int = 0
    would_add: int = 0
    skipped: int = 0
    errors: int = 0

    def log(self) -> None:
        logging.info("-" * 60)
        logging.info("Candidates submitted: %d", self.candidates)
        logging.info("Added: %d", self.added)
        logging.info("Already present: %d", self.already_present)
        if self.would_add:
            logging.info("Would add (dry run): %d", self.would_add)
        logging.info("Skipped (unresolvable): %d", self.skipped)
        logging.info("Errors: %d", self.errors)


def submit_candidates(ctx: BotContext, candidates: List[Candidate],
                      max_edits: Optional[int] = None) -> RunSummary:
    """
    Submit every complete candidate in order and count the outcomes.

    Behavior:
    - Incomplete candidates (no item or no image) are passed over silently.
    - A `ClaimError` (file without page id, malformed item id) is logged and
      counted as skipped; a failed write comes back as ``ERROR`` and is counted
      as an error. Neither stops the run.
    - With `max_edits` set, submission stops once that many statements were
      added; dry-run and already-present outcomes do not count towards it.

    Returns:
        RunSummary: the counters, ready for `RunSummary.log`.
    """
    summary = RunSummary()
    with tqdm(total=len(candidates), desc="Depicts statements", unit="file", dynamic_ncols=True) as pbar:
        for c in candidates:
            pbar.update(1)
            if max_edits is not None and summary.added >= max_edits:
                logging.info("Reached MAX_EDITS=%d; stopping further writes.", max_edits)
                break
            if not c.complete:
                continue
            summary.candidates += 1
            try:
                outcome = claims.add_target_prominent(ctx, c.item, c.image)
            except ClaimError as e:
                logging.error("%s : %s", c, e)
                summary.skipped += 1
                continue
            if outcome == claims.ADDED:
                summary.added += 1
            elif outcome == claims.ALREADY_PRESENT:
                summary.already_present += 1
            elif outcome == claims.WOULD_ADD:
                summary.would_add += 1
            else:
                summary.errors += 1
    return summary


def depicts_from_category_scan(ctx: BotContext, petscan_url: str,
                               max_edits: Optional[int] = None) -> RunSummary:
    candidates = category_scan_candidates(ctx.commons, petscan_url)
    candidates = apply_filters(ctx, candidates, CATEGORY_SCAN_STAGES)
    return submit_candidates(ctx, candidates, max_edits=max_edits)


def depicts_p18_and_free_page_image(ctx: BotContext, sparql_part: str, server: str,
                                    max_edits: Optional[int] = None) -> RunSummary:
    if ctx.sparql is None:
        raise BotError("No SPARQL endpoint configured")
    candidates = structured_query_candidates(ctx.sparql, sparql_part, server)
    candidates = apply_filters(ctx, candidates, structured_query_stages(server))
    return submit_candidates(ctx, candidates, max_edits=max_edits)


def run(cfg: BotConfig, ctx: Optional[BotContext] = None) -> RunSummary:
    ctx = ctx if ctx is not None else BotContext.from_config(cfg)
    if cfg.mode == MODE_CATEGORY_SCAN:
        summary = depicts_from_category_scan(ctx, cfg.petscan_url, max_edits=cfg.max_edits)
    else:
        summary = depicts_p18_and_free_page_image(ctx, cfg.sparql_part, cfg.sibling_wiki,
                                                  max_edits=cfg.max_edits)
    summary.log()
    return summary


def main() -> None:
    """
    Console entry point (`depicts-bot`, `python -m depicts_bot`).

    Loads `.env`, installs the tqdm-aware logger, builds the configuration and
    runs the configured variant. Configuration, login and response-shape
    errors, as well as transport failures, are logged at CRITICAL and end the
    process with exit status 1.
    """
    load_dotenv()
    setup_tqdm_logging()
    try:
        cfg = build_config()
        if cfg.verbose:
            setup_tqdm_logging(logging.DEBUG)
        logging.info("Mode: %s | log: %s | dry run: %s", cfg.mode, cfg.log_path, cfg.dry_run)
        run(cfg)
    except (BotError, requests.RequestException) as e:
        logging.critical("%s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
