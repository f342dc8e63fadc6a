import copy
from typing import Dict, List, Optional

import pytest

from depicts_bot.botlog import BotLog
from depicts_bot.context import BotContext
from depicts_bot.entities import EntityCache
from depicts_bot.errors import ApiError


def entity_snak(property_id: str, target: str) -> Dict:
    return {
        "mainsnak": {
            "snaktype": "value",
            "property": property_id,
            "datavalue": {
                "value": {"entity-type": "item", "numeric-id": int(target[1:]), "id": target},
                "type": "wikibase-entityid",
            },
        },
        "type": "statement",
        "rank": "normal",
    }


def string_snak(property_id: str, value: str) -> Dict:
    return {
        "mainsnak": {
            "snaktype": "value",
            "property": property_id,
            "datavalue": {"value": value, "type": "string"},
        },
        "type": "statement",
        "rank": "normal",
    }


def make_item(qid: str, p31=(), p301=(), p18=()) -> Dict:
    claims: Dict[str, List[Dict]] = {}
    if p31:
        claims["P31"] = [entity_snak("P31", t) for t in p31]
    if p301:
        claims["P301"] = [entity_snak("P301", t) for t in p301]
    if p18:
        claims["P18"] = [string_snak("P18", f) for f in p18]
    return {"type": "item", "id": qid, "claims": claims}


class FakeWikibase:
    """Stands in for a `MediaWikiApi` holding entities."""

    def __init__(self, api_url: str, entities: Optional[Dict[str, Dict]] = None):
        self.api_url = api_url
        self.entities = dict(entities or {})
        self.entity_requests: List[List[str]] = []

    def get_entities(self, ids):
        ids = list(ids)
        self.entity_requests.append(ids)
        return {i: copy.deepcopy(self.entities[i]) for i in ids if i in self.entities}


class FakeCommons(FakeWikibase):
    def __init__(self):
        super().__init__("https://commons.example/w/api.php")
        self.page_ids: Dict[str, int] = {}
        self.artworks = set()
        self.edits: List[Dict] = []
        self.fail_edits = False
        self.petscan_payload = None

    def add_file(self, title: str, page_id: int, statements: Optional[Dict] = None) -> None:
        self.page_ids[title] = page_id
        self.entities[f"M{page_id}"] = {
            "type": "mediainfo",
            "id": f"M{page_id}",
            "statements": statements or {},
        }

    def get_page_id(self, title: str) -> int:
        if title not in self.page_ids:
            raise LookupError(f"Page does not exist: {title}")
        return self.page_ids[title]

    def page_contains_template(self, title: str, template: str) -> bool:
        return title in self.artworks

    def get_json(self, url, params=None):
        return self.petscan_payload

    def edit_entity(self, entity_id, data, summary=None, baserevid=None):
        if self.fail_edits:
            raise ApiError("wbeditentity", "permissiondenied")
        self.edits.append({"id": entity_id, "data": data, "summary": summary, "baserevid": baserevid})
        entity = self.entities.setdefault(entity_id, {"type": "mediainfo", "id": entity_id, "statements": {}})
        for claim in data["claims"]:
            prop = claim["mainsnak"]["property"]
            entity["statements"].setdefault(prop, []).append(claim)
        return {"success": 1, "entity": entity}


class FakeSiblingWiki:
    def __init__(self, page_images: Optional[Dict[str, str]] = None):
        self.page_images = dict(page_images or {})
        self.requested: List[str] = []

    def get_free_page_image(self, title: str) -> Optional[str]:
        self.requested.append(title)
        return self.page_images.get(title)


class FakeSparql:
    def __init__(self, payload=None):
        self.payload = payload if payload is not None else {"results": {"bindings": []}}
        self.queries: List[str] = []

    def query(self, sparql: str):
        self.queries.append(sparql)
        return self.payload


def binding(qid: str, image_url: str, article_url: str) -> Dict:
    return {
        "q": {"type": "uri", "value": f"http://www.wikidata.org/entity/{qid}"},
        "image": {"type": "uri", "value": image_url},
        "article": {"type": "uri", "value": article_url},
    }


@pytest.fixture
def commons():
    return FakeCommons()


@pytest.fixture
def wikidata():
    return FakeWikibase("https://wikidata.example/w/api.php")


@pytest.fixture
def sibling_wiki():
    return FakeSiblingWiki()


@pytest.fixture
def sparql():
    return FakeSparql()


@pytest.fixture
def ctx(tmp_path, commons, wikidata, sibling_wiki, sparql):
    return BotContext(
        commons=commons,
        items=EntityCache(wikidata),
        media=EntityCache(commons),
        bot_log=BotLog(str(tmp_path / "bot.log")),
        sparql=sparql,
        wiki_factory=lambda server: sibling_wiki,
    )
