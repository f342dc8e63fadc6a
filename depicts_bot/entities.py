"""
Read-only views over Wikibase entity JSON and an in-memory cache of them.

Items (Q…) keep their statements under ``claims``, MediaInfo entities (M…)
under ``statements``; `Entity` hides the difference.
"""
import logging
from typing import Dict, Iterable, List, Optional

import requests

from .errors import BotError
from .mw import MediaWikiApi


def snak_value(statement: Dict) -> Optional[object]:
    """Return the datavalue value of a statement's main snak, or None for novalue/somevalue."""
    if not isinstance(statement, dict):
        return None
    snak = statement.get("mainsnak")
    if not isinstance(snak, dict) or snak.get("snaktype") != "value":
        return None
    dv = snak.get("datavalue")
    if not isinstance(dv, dict):
        return None
    return dv.get("value")


def entity_id_of(value: object) -> Optional[str]:
    """Return ``"Q42"`` for a wikibase-entityid value (``id`` or ``numeric-id`` form)."""
    if not isinstance(value, dict):
        return None
    eid = value.get("id")
    if isinstance(eid, str) and eid:
        return eid
    numeric = value.get("numeric-id")
    if isinstance(numeric, int):
        prefix = {"item": "Q", "property": "P", "lexeme": "L"}.get(value.get("entity-type", "item"), "Q")
        return f"{prefix}{numeric}"
    return None


class Entity:
    def __init__(self, data: Dict):
        self.data = data

    @property
    def id(self) -> str:
        return self.data.get("id", "")

    @property
    def statements(self) -> Dict[str, List[Dict]]:
        claims = self.data.get("claims")
        if not isinstance(claims, dict):
            claims = self.data.get("statements")
        return claims if isinstance(claims, dict) else {}

    def claims_with_property(self, property_id: str) -> List[Dict]:
        claims = self.statements.get(property_id, [])
        return [c for c in claims if isinstance(c, dict)] if isinstance(claims, list) else []

    def values_for_property(self, property_id: str) -> List[object]:
        """Main-snak values of all `property_id` statements, skipping novalue/somevalue."""
        values = []
        for claim in self.claims_with_property(property_id):
            value = snak_value(claim)
            if value is not None:
                values.append(value)
        return values

    def string_values(self, property_id: str) -> List[str]:
        return [v for v in self.values_for_property(property_id) if isinstance(v, str)]

    def entity_values(self, property_id: str) -> List[str]:
        return [eid for eid in map(entity_id_of, self.values_for_property(property_id)) if eid]

    def has_target_entity(self, property_id: str, target: str) -> bool:
        return target in self.entity_values(property_id)


class EntityCache:
    """
    Id -> `Entity` cache in front of one wiki's `wbgetentities`.

    Entities that do not exist (or fail to load in `load_entity`) are simply
    absent from the cache.
    """

    def __init__(self, api: MediaWikiApi):
        self.api = api
        self._entities: Dict[str, Entity] = {}

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def get(self, entity_id: Optional[str]) -> Optional[Entity]:
        if not entity_id:
            return None
        return self._entities.get(entity_id)

    def load_entities(self, ids: Iterable[str]) -> None:
        """Bulk-load every id not cached yet. API and shape errors propagate."""
        missing = [i for i in dict.fromkeys(ids) if i and i not in self._entities]
        if not missing:
            return
        logging.debug("Loading %d entities from %s", len(missing), self.api.api_url)
        for eid, data in self.api.get_entities(missing).items():
            self._entities[eid] = Entity(data)

    def load_entity(self, entity_id: str) -> Optional[Entity]:
        """Return the cached entity, fetching it first if needed; None if it cannot be loaded."""
        if entity_id not in self._entities:
            try:
                self.load_entities([entity_id])
            except (BotError, requests.RequestException) as e:
                logging.debug("load_entity: %s could not be loaded: %s", entity_id, e)
                return None
        return self._entities.get(entity_id)

    def remove(self, entity_id: str) -> None:
        """Evict `entity_id` (no-op if absent) so the next lookup fetches its current revision."""
        self._entities.pop(entity_id, None)

    def refresh(self, ids: Iterable[str]) -> None:
        """Evict `ids` and load their current state."""
        ids = list(ids)
        for eid in ids:
            self.remove(eid)
        self.load_entities(ids)
