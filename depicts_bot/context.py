"""
Explicit bot state passed to every pipeline stage and to the claim submitter.
"""
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .botlog import BotLog
from .config import P_DEPICTS, BotConfig
from .entities import EntityCache
from .mw import FixedDelayPacer, MediaWikiApi, SparqlEndpoint, session_with_retries


@dataclass
class BotContext:
    """
    Attributes:
        commons: logged-in client for Commons (file pages, MediaInfo writes).
        items: cache of Wikidata items.
        media: cache of Commons MediaInfo entities; entries are evicted after an edit.
        bot_log: local log of processed (item, image) pairs.
        sparql: Wikidata query service client (structured-query path).
        wiki_factory: builds a client for a sibling wiki host such as ``de.wikipedia.org``.
        property: property written on the files (P180, depicts).
        dry_run: build statements but do not submit them.
    """
    commons: MediaWikiApi
    items: EntityCache
    media: EntityCache
    bot_log: BotLog
    sparql: Optional[SparqlEndpoint] = None
    wiki_factory: Optional[Callable[[str], MediaWikiApi]] = None
    property: str = P_DEPICTS
    dry_run: bool = False
    _wikis: Dict[str, MediaWikiApi] = field(default_factory=dict, repr=False)

    def wiki(self, server: str) -> MediaWikiApi:
        """Return (and memoise) the client for a sibling wiki host."""
        if server not in self._wikis:
            if self.wiki_factory is None:
                raise RuntimeError(f"No client available for {server}")
            self._wikis[server] = self.wiki_factory(server)
        return self._wikis[server]

    @classmethod
    def from_config(cls, cfg: BotConfig) -> "BotContext":
        """Build all clients for `cfg` and log in to Commons (raises `AuthError` on failure)."""
        session = session_with_retries(cfg.user_agent)
        commons = MediaWikiApi(cfg.commons_api, session=session, user_agent=cfg.user_agent,
                               pacer=FixedDelayPacer(cfg.edit_delay))
        commons.login(cfg.username, cfg.password)
        wikidata = MediaWikiApi(cfg.wikidata_api, session=session_with_retries(cfg.user_agent),
                                user_agent=cfg.user_agent)

        def wiki_factory(server: str) -> MediaWikiApi:
            return MediaWikiApi(f"https://{server}/w/api.php", session=session_with_retries(cfg.user_agent),
                                user_agent=cfg.user_agent)

        return cls(
            commons=commons,
            items=EntityCache(wikidata),
            media=EntityCache(commons),
            bot_log=BotLog(cfg.log_path),
            sparql=SparqlEndpoint(cfg.sparql_endpoint, user_agent=cfg.user_agent),
            wiki_factory=wiki_factory,
            property=cfg.property,
            dry_run=cfg.dry_run,
        )
