"""
Append-only local log of (item, image) pairs the bot already handled.

Each line holds the pair in double quotes, e.g.::

    Adding "P180": "Q42" to "Douglas_Adams.jpg"

Lookups are a cheap, approximate pre-check: a pair counts as logged when some
line contains every quoted part. The authoritative duplicate check is the
statement scan done right before writing (see `claims.has_statement`).
"""
import logging
import os
from typing import Iterable


def format_record(property_id: str, item: str, image: str) -> str:
    return f'Adding "{property_id}": "{item}" to "{image}"'


class BotLog:
    def __init__(self, path: str = "bot.log"):
        self.path = path

    def contains(self, parts: Iterable[str]) -> bool:
        """True if one line of the log contains all `parts`, each wrapped in double quotes."""
        quoted = [f'"{p}"' for p in parts]
        if not os.path.exists(self.path):
            return False
        with open(self.path, "r", encoding="utf-8", errors="replace") as fh:
            for line in fh:
                if all(q in line for q in quoted):
                    logging.debug("Found a log row for %s", quoted)
                    return True
        return False

    def append(self, line: str) -> None:
        """Append one record; a trailing newline in `line` is not doubled."""
        logging.debug("bot log: %s", line)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line.rstrip("\n") + "\n")

    def append_pair(self, property_id: str, item: str, image: str) -> str:
        line = format_record(property_id, item, image)
        self.append(line)
        return line
