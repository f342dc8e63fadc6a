"""
Configuration for the Commons depicts bot.

Run parameters are read from the environment (a `.env` file is loaded by
`runner.main` through python-dotenv); login credentials are read from an ini
file with a ``[user]`` section::

    [user]
    user = YourUsername@YourBot
    pass = YourBotPassword

Environment variables
---------------------
- DEPICTS_BOT_INI       ini file with credentials (default: bot.ini)
- DEPICTS_BOT_LOG       local log of processed (item, image) pairs (default: bot.log)
- WIKIMEDIA_USER_AGENT  User-Agent sent with every request
- DEPICTS_MODE          "structured-query" (default) or "category-scan"
- SPARQL_PART           item selector used in the structured query
- SIBLING_WIKI          host of the wiki whose free page image must agree
- PETSCAN_URL           PetScan JSON URL for the category scan
- EDIT_DELAY_SEC        pause after each edit (default: 0.5)
- DRY_RUN               1 = build statements but do not write them
- MAX_EDITS             stop after this many successful writes (unset = no cap)
- VERBOSE               1 = DEBUG logging
"""
import configparser
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .errors import ConfigError

COMMONS_API = "https://commons.wikimedia.org/w/api.php"
WIKIDATA_API = "https://www.wikidata.org/w/api.php"
SPARQL_ENDPOINT = "https://query.wikidata.org/sparql"

DEFAULT_USER_AGENT = "Commons-Depicts-Bot/1.0 (https://commons.wikimedia.org/wiki/Commons:Bots)"
DEFAULT_SPARQL_PART = "?q wdt:P31 wd:Q5 ; wdt:P21 wd:Q6581072"
DEFAULT_SIBLING_WIKI = "de.wikipedia.org"
DEFAULT_PETSCAN_URL = "https://petscan.wmflabs.org/?psid=11247873&format=json"

MODE_STRUCTURED_QUERY = "structured-query"
MODE_CATEGORY_SCAN = "category-scan"
MODES = (MODE_STRUCTURED_QUERY, MODE_CATEGORY_SCAN)

# Wikibase ids
P_INSTANCE_OF = "P31"
P_IMAGE = "P18"
P_MAIN_TOPIC = "P301"
P_DEPICTS = "P180"
Q_WIKIMEDIA_CATEGORY = "Q4167836"

ARTWORK_TEMPLATE = "Artwork"
SUMMARY_TAG = "#commons_depicts_statement"


@dataclass
class BotConfig:
    ini_path: str
    username: str
    password: str
    user_agent: str
    log_path: str
    mode: str
    sparql_part: str
    sibling_wiki: str
    petscan_url: str
    edit_delay: float
    dry_run: bool
    max_edits: Optional[int]
    verbose: bool
    commons_api: str = COMMONS_API
    wikidata_api: str = WIKIDATA_API
    sparql_endpoint: str = SPARQL_ENDPOINT
    property: str = P_DEPICTS


def read_credentials(ini_path: str) -> Tuple[str, str]:
    """Return ``(user, pass)`` from the ``[user]`` section of an ini file.

    Raises:
        ConfigError: if the file is missing, cannot be parsed, or lacks a key.
    """
    if not os.path.exists(ini_path):
        raise ConfigError(f"Config file not found: {ini_path}")
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(ini_path, "r", encoding="utf-8") as fh:
            parser.read_file(fh)
    except (OSError, configparser.Error) as e:
        raise ConfigError(f"Cannot parse config file {ini_path}: {e}") from e

    if not parser.has_section("user"):
        raise ConfigError(f"Config file {ini_path} has no [user] section")
    user = parser.get("user", "user", fallback="").strip()
    password = parser.get("user", "pass", fallback="").strip()
    if not user or not password:
        raise ConfigError(f"Config file {ini_path} needs both user.user and user.pass")
    return user, password


def _env_flag(env: Mapping[str, str], name: str, default: str = "0") -> bool:
    return str(env.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = str(env.get(name, "")).strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {raw!r}")
    return value


def _env_int(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = str(env.get(name, "")).strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {raw!r}")
    return value


def build_config(env: Optional[Mapping[str, str]] = None) -> BotConfig:
    """Build a `BotConfig` from environment values plus the credentials ini file."""
    env = os.environ if env is None else env

    mode = str(env.get("DEPICTS_MODE", MODE_STRUCTURED_QUERY)).strip() or MODE_STRUCTURED_QUERY
    if mode not in MODES:
        raise ConfigError(f"DEPICTS_MODE must be one of {MODES}, got {mode!r}")

    ini_path = str(env.get("DEPICTS_BOT_INI", "bot.ini")).strip() or "bot.ini"
    user, password = read_credentials(ini_path)

    return BotConfig(
        ini_path=ini_path,
        username=user,
        password=password,
        user_agent=str(env.get("WIKIMEDIA_USER_AGENT", "")).strip() or DEFAULT_USER_AGENT,
        log_path=str(env.get("DEPICTS_BOT_LOG", "bot.log")).strip() or "bot.log",
        mode=mode,
        sparql_part=str(env.get("SPARQL_PART", "")).strip() or DEFAULT_SPARQL_PART,
        sibling_wiki=str(env.get("SIBLING_WIKI", "")).strip() or DEFAULT_SIBLING_WIKI,
        petscan_url=str(env.get("PETSCAN_URL", "")).strip() or DEFAULT_PETSCAN_URL,
        edit_delay=_env_float(env, "EDIT_DELAY_SEC", 0.5),
        dry_run=_env_flag(env, "DRY_RUN"),
        max_edits=_env_int(env, "MAX_EDITS"),
        verbose=_env_flag(env, "VERBOSE"),
    )
