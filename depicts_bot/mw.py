"""
MediaWiki Action API and SPARQL client used by the depicts bot.

Everything that touches HTTP lives here: sessions with transport retries,
login and CSRF handling, polite write calls with `maxlag` backoff, and the
handful of read endpoints the bot needs. Each read endpoint decodes its JSON
into a plain typed value and raises `ResponseShapeError` when the payload does
not look as expected, so callers never index into raw JSON.

APIs used
---------
* Login & tokens:  `action=query&meta=tokens&type=login|csrf`, `action=login`
* User groups:     `action=query&meta=userinfo&uiprop=groups`
* Page id:         `action=query&prop=pageprops&titles=File:…`
* Page image:      `action=query&prop=pageprops&titles=<article>` (`page_image_free`)
* Templates:       `action=query&prop=templates&tltemplates=Template:…&titles=…`
* Entities:        `action=wbgetentities&ids=Q…|M…`
* Write:           `action=wbeditentity&id=M…&data={"claims": [...]}`
"""
import json
import logging
import random
import time
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import ApiError, AuthError, ResponseShapeError

# ====================================================================
#  Configuration: timeouts, batching, retry policy
# ====================================================================
READ_TIMEOUT = 240
WRITE_TIMEOUT = 240
ENTITY_BATCH_SIZE = 50

# Refused before anything is saved, so resending cannot duplicate a write.
RETRYABLE_API_CODES = {"maxlag", "ratelimited"}
RETRYABLE_AUTH_CODES = {"badtoken"}
REDACT_KEYS = {"token", "csrftoken", "logintoken", "lgtoken", "lgpassword", "password"}


# ====================================================================
#  Functions: HTTP session & edit pacing
# ====================================================================
def session_with_retries(user_agent: str) -> requests.Session:
    """Create a `requests.Session` with a User-Agent and urllib3 retry/backoff on 429/5xx reads."""
    s = requests.Session()
    s.headers.update({"Accept": "application/json", "User-Agent": user_agent})
    retry = Retry(
        total=5,
        backoff_factor=1.0,
        status_forcelist={429, 500, 502, 503, 504},
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    return s


def _redact(d: Optional[Dict]) -> Optional[Dict]:
    if not isinstance(d, dict):
        return d
    return {k: ("<redacted>" if str(k).lower() in REDACT_KEYS else v) for k, v in d.items()}


class EditPacer:
    """Pacing policy applied after every successful write."""

    def wait(self) -> None:
        raise NotImplementedError


class FixedDelayPacer(EditPacer):
    def __init__(self, seconds: float = 0.5):
        self.seconds = seconds

    def wait(self) -> None:
        if self.seconds > 0:
            time.sleep(self.seconds)


class NoDelayPacer(EditPacer):
    def wait(self) -> None:
        pass


# ====================================================================
#  Class: MediaWiki Action API client
# ====================================================================
class MediaWikiApi:
    """
    Thin client for one MediaWiki Action API endpoint.

    Args:
        api_url: e.g. ``"https://commons.wikimedia.org/w/api.php"``.
        session: a configured `requests.Session`; one is created with
            `session_with_retries` when omitted.
        user_agent: informative User-Agent per Wikimedia API policy.
        pacer: `EditPacer` consulted after each successful write.
        max_retries: retries for `maxlag`/rate-limit answers and bad tokens on writes.
        base_sleep: base seconds for the exponential backoff on writes.
    """

    def __init__(self, api_url: str, session: Optional[requests.Session] = None,
                 user_agent: str = "", pacer: Optional[EditPacer] = None,
                 max_retries: int = 4, base_sleep: float = 1.0):
        self.api_url = api_url
        self.session = session if session is not None else session_with_retries(user_agent)
        self.pacer = pacer if pacer is not None else FixedDelayPacer()
        self.max_retries = max_retries
        self.base_sleep = base_sleep
        self.csrf_token: Optional[str] = None
        self.username: Optional[str] = None
        self.is_bot = False

    # ------------------------------------------------------------------ #
    # Primitives
    # ------------------------------------------------------------------ #

    def request(self, method: str, params: Dict, data: Optional[Dict] = None) -> Dict:
        """
        Perform a single Action API request and return the decoded JSON.

        Raises:
            ValueError: for an unsupported method.
            requests.RequestException: for transport or non-2xx HTTP errors.
            ResponseShapeError: if the body is not a JSON object.
        """
        method_upper = (method or "").upper()
        if method_upper not in {"GET", "POST"}:
            raise ValueError(f"request: unsupported method {method!r}; expected 'GET' or 'POST'.")

        p = dict(params)
        p.setdefault("format", "json")
        try:
            if method_upper == "GET":
                r = self.session.get(self.api_url, params=p, timeout=READ_TIMEOUT)
            else:
                r = self.session.post(self.api_url, params=p, data=(data or {}), timeout=WRITE_TIMEOUT)
            r.raise_for_status()
        except requests.RequestException as e:
            logging.error("request: %s %s failed | params=%s data=%s | err=%s",
                          method_upper, self.api_url, _redact(p), _redact(data), e)
            raise

        try:
            payload = r.json()
        except ValueError as e:
            raise ResponseShapeError(self.api_url, f"response is not JSON ({e})") from e
        if not isinstance(payload, dict):
            raise ResponseShapeError(self.api_url, "response is not a JSON object", payload)
        return payload

    def get_json(self, url: str, params: Optional[Dict] = None) -> Any:
        """GET an arbitrary JSON URL (e.g. a PetScan result) through this session."""
        r = self.session.get(url, params=params or {}, timeout=READ_TIMEOUT)
        r.raise_for_status()
        try:
            return r.json()
        except ValueError as e:
            raise ResponseShapeError(url, f"response is not JSON ({e})") from e

    # ------------------------------------------------------------------ #
    # Login & tokens
    # ------------------------------------------------------------------ #

    def login(self, username: str, password: str) -> None:
        """
        Log in (normal account or BotPassword ``User@BotName``), fetch a CSRF
        token and record whether the account is in the ``bot`` group.

        Raises:
            AuthError: on any HTTP failure, a non-``Success`` login result, or a missing token.
        """
        try:
            tok = self.request("GET", {"action": "query", "meta": "tokens", "type": "login"})
        except (requests.RequestException, ResponseShapeError) as e:
            raise AuthError(f"Failed to obtain login token: {e}") from e
        login_token = (tok.get("query") or {}).get("tokens", {}).get("logintoken")
        if not login_token:
            raise AuthError("Failed to obtain login token (empty response).")

        try:
            res = self.request("POST", {"action": "login"},
                               data={"lgname": username, "lgpassword": password, "lgtoken": login_token})
        except (requests.RequestException, ResponseShapeError) as e:
            raise AuthError(f"Login request failed: {e}") from e
        result = (res.get("login") or {}).get("result")
        if result != "Success":
            reason = (res.get("login") or {}).get("reason") or result or "unknown"
            raise AuthError(f"Login failed (result={reason!r}).")

        self.username = username
        self.csrf_token = self.fetch_csrf()
        self.is_bot = "bot" in self.user_groups()
        logging.info("Logged in to %s as %s%s", self.api_url, username, " (bot)" if self.is_bot else "")

    def fetch_csrf(self) -> str:
        try:
            j = self.request("GET", {"action": "query", "meta": "tokens", "type": "csrf"})
        except (requests.RequestException, ResponseShapeError) as e:
            raise AuthError(f"Failed to fetch CSRF token: {e}") from e
        token = (j.get("query") or {}).get("tokens", {}).get("csrftoken")
        if not token or not isinstance(token, str):
            raise AuthError("No CSRF token found in API response")
        return token

    def user_groups(self) -> List[str]:
        j = self.request("GET", {"action": "query", "meta": "userinfo", "uiprop": "groups"})
        groups = (j.get("query") or {}).get("userinfo", {}).get("groups", [])
        return list(groups) if isinstance(groups, list) else []

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def _backoff(self, attempt: int) -> float:
        return self.base_sleep * (2 ** (attempt - 1)) * (0.8 + 0.4 * random.random())

    def mutate(self, params: Dict, data: Optional[Dict] = None) -> Dict:
        """
        POST a write action with ``maxlag=5``, the current CSRF token and
        ``assert=user``.

        Retries `maxlag`/`ratelimited` answers with exponential backoff and
        refreshes the CSRF token on `badtoken`, up to `max_retries`. Other
        errors (`internal_api_error`, lost session) are raised at once: the
        server may already have saved the edit, and a new CSRF token cannot
        fix a lost login. Calls the pacer once the write succeeded.

        Raises:
            ApiError: for a non-retryable API error or when retries are exhausted.
            requests.RequestException: for transport failures.
        """
        p = dict(params)
        p.setdefault("maxlag", "5")
        d = dict(data or {})
        d.setdefault("assert", "user")
        if self.csrf_token is None:
            self.csrf_token = self.fetch_csrf()

        attempt = 0
        while True:
            attempt += 1
            d["token"] = self.csrf_token
            j = self.request("POST", p, data=d)

            err = j.get("error")
            if not err:
                self.pacer.wait()
                return j

            code = str(err.get("code") or "").lower()
            if attempt <= self.max_retries and code in RETRYABLE_API_CODES:
                sleep = self._backoff(attempt)
                logging.warning("API %s: %s, retrying in %.1fs (attempt %d/%d)",
                                p.get("action"), code, sleep, attempt, self.max_retries)
                time.sleep(sleep)
                continue
            if attempt <= self.max_retries and code in RETRYABLE_AUTH_CODES:
                logging.warning("API %s: %s, refreshing CSRF and retrying (attempt %d/%d)",
                                p.get("action"), code, attempt, self.max_retries)
                self.csrf_token = self.fetch_csrf()
                continue
            raise ApiError(str(p.get("action")), code, str(err.get("info") or ""))

    def edit_entity(self, entity_id: str, data: Dict, summary: Optional[str] = None,
                    baserevid: Optional[int] = None) -> Dict:
        """Submit `data` (e.g. ``{"claims": [...]}``) to an entity via `wbeditentity`."""
        form = {"id": entity_id, "data": json.dumps(data)}
        if summary:
            form["summary"] = summary
        if baserevid is not None:
            form["baserevid"] = str(baserevid)
        if self.is_bot:
            form["bot"] = "1"
        return self.mutate({"action": "wbeditentity"}, form)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def _query_pages(self, params: Dict, endpoint: str) -> Dict[str, Dict]:
        p = {"action": "query"}
        p.update(params)
        j = self.request("GET", p)
        pages = (j.get("query") or {}).get("pages")
        if not isinstance(pages, dict):
            raise ResponseShapeError(endpoint, "no object query.pages in response", j)
        return pages

    def get_page_id(self, title: str) -> int:
        """
        Return the numeric page id for a title.

        Raises:
            ResponseShapeError: if the response has no pages or an unparsable id.
            LookupError: if the page does not exist.
        """
        pages = self._query_pages({"prop": "pageprops", "titles": title}, "get_page_id")
        for page_id in pages:
            try:
                pid = int(page_id)
            except ValueError as e:
                raise ResponseShapeError("get_page_id", f"cannot parse page id {page_id!r}") from e
            if pid < 0:
                raise LookupError(f"Page does not exist: {title}")
            return pid
        raise ResponseShapeError("get_page_id", f"no page id for {title!r}")

    def get_free_page_image(self, title: str) -> Optional[str]:
        """Return the ``page_image_free`` page prop of an article, or None."""
        try:
            pages = self._query_pages({"prop": "pageprops", "titles": title}, "get_free_page_image")
        except (requests.RequestException, ResponseShapeError) as e:
            logging.debug("get_free_page_image: %s: %s", title, e)
            return None
        for page in pages.values():
            image = ((page or {}).get("pageprops") or {}).get("page_image_free")
            if isinstance(image, str):
                return image
        return None

    def page_contains_template(self, title: str, template: str) -> bool:
        """True if `title` transcludes ``Template:<template>``; lookup failures count as False."""
        try:
            pages = self._query_pages({
                "prop": "templates",
                "tltemplates": f"Template:{template}",
                "titles": title,
            }, "page_contains_template")
        except (requests.RequestException, ResponseShapeError) as e:
            logging.debug("page_contains_template: %s: %s", title, e)
            return False
        return any(isinstance((page or {}).get("templates"), list) for page in pages.values())

    def get_entities(self, ids: Iterable[str]) -> Dict[str, Dict]:
        """
        Fetch entity JSON for `ids` in batches of 50.

        Entities reported as ``missing`` are left out of the result.

        Raises:
            ResponseShapeError: if a batch answer has no ``entities`` object.
        """
        ids = [i for i in dict.fromkeys(ids) if i]
        out: Dict[str, Dict] = {}
        for start in range(0, len(ids), ENTITY_BATCH_SIZE):
            batch = ids[start:start + ENTITY_BATCH_SIZE]
            j = self.request("GET", {"action": "wbgetentities", "ids": "|".join(batch)})
            entities = j.get("entities")
            if not isinstance(entities, dict):
                raise ResponseShapeError("wbgetentities", "no object entities in response", j)
            for eid, ent in entities.items():
                if not isinstance(ent, dict) or "missing" in ent:
                    continue
                out[eid] = ent
        return out


# ====================================================================
#  Class: SPARQL query service client
# ====================================================================
class SparqlEndpoint:
    """GET-based client for a SPARQL query service returning SPARQL JSON results."""

    def __init__(self, url: str, session: Optional[requests.Session] = None, user_agent: str = ""):
        self.url = url
        self.session = session if session is not None else session_with_retries(user_agent)

    def query(self, sparql: str) -> Dict:
        r = self.session.get(self.url, params={"query": sparql, "format": "json"}, timeout=READ_TIMEOUT)
        r.raise_for_status()
        try:
            payload = r.json()
        except ValueError as e:
            raise ResponseShapeError(self.url, f"SPARQL response is not JSON ({e})") from e
        if not isinstance(payload, dict):
            raise ResponseShapeError(self.url, "SPARQL response is not a JSON object", payload)
        return payload
