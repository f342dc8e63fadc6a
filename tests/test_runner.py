import logging

import pytest

from depicts_bot import config, runner
from depicts_bot.candidates import Candidate
from depicts_bot.config import BotConfig
from depicts_bot.logsetup import TqdmLoggingHandler

from conftest import binding, make_item


def petscan(*rows):
    return {"n": "result", "*": [{"n": "combination", "a": {"type": "page",
            "*": [{"title": t, "q": q, "nstext": "Category"} for t, q in rows]}}]}


def make_cfg(mode, max_edits=None):
    return BotConfig(
        ini_path="bot.ini", username="a", password="b", user_agent="test", log_path="unused.log",
        mode=mode, sparql_part=config.DEFAULT_SPARQL_PART, sibling_wiki="de.wikipedia.org",
        petscan_url="https://petscan.example/?psid=1&format=json", edit_delay=0,
        dry_run=False, max_edits=max_edits, verbose=False,
    )


@pytest.fixture
def women(ctx, commons, sibling_wiki, sparql):
    sparql.payload = {"results": {"bindings": [
        binding("Q1", "http://commons.wikimedia.org/wiki/Special:FilePath/Ada%20Lovelace.jpg",
                "https://de.wikipedia.org/wiki/Ada_Lovelace"),
        binding("Q2", "http://commons.wikimedia.org/wiki/Special:FilePath/Hopper%20at%20desk.jpg",
                "https://de.wikipedia.org/wiki/Grace_Hopper"),
        binding("Q3", "http://commons.wikimedia.org/wiki/Special:FilePath/Lise%20Meitner.jpg",
                "https://de.wikipedia.org/wiki/Lise_Meitner"),
    ]}}
    sibling_wiki.page_images.update({
        "Ada_Lovelace": "Ada_Lovelace.jpg",
        "Grace_Hopper": "Grace_Hopper_1984.jpg",
        "Lise_Meitner": "Lise_Meitner.jpg",
    })
    commons.add_file("File:Ada_Lovelace.jpg", 1)
    commons.add_file("File:Hopper_at_desk.jpg", 2)
    commons.add_file("File:Lise_Meitner.jpg", 3)
    return ctx


@pytest.mark.unit
def test_structured_query_run(women, commons, sparql):
    summary = runner.run(make_cfg(config.MODE_STRUCTURED_QUERY), women)

    assert "schema:isPartOf <https://de.wikipedia.org/>" in sparql.queries[0]
    assert [e["id"] for e in commons.edits] == ["M1", "M3"]
    assert summary.added == 2
    assert summary.errors == 0
    assert women.bot_log.contains(["Q1", "File:Ada_Lovelace.jpg"])


@pytest.mark.unit
def test_second_run_skips_logged_pairs(women, commons):
    runner.run(make_cfg(config.MODE_STRUCTURED_QUERY), women)
    summary = runner.run(make_cfg(config.MODE_STRUCTURED_QUERY), women)

    assert len(commons.edits) == 2
    assert summary.candidates == 0


@pytest.mark.unit
def test_max_edits_caps_writes(women, commons):
    summary = runner.run(make_cfg(config.MODE_STRUCTURED_QUERY, max_edits=1), women)
    assert summary.added == 1
    assert len(commons.edits) == 1


@pytest.mark.unit
def test_dry_run_writes_nothing(women, commons):
    women.dry_run = True
    summary = runner.run(make_cfg(config.MODE_STRUCTURED_QUERY), women)

    assert commons.edits == []
    assert summary.would_add == 2
    assert not women.bot_log.contains(["Q1", "File:Ada_Lovelace.jpg"])


@pytest.mark.unit
def test_category_scan_run(ctx, commons, wikidata):
    commons.petscan_payload = petscan(("Town_hall_of_Kassel", "Q10"), ("Altarpieces", "Q11"),
                                      ("Kassel", "Q12"))
    wikidata.entities.update({
        "Q10": make_item("Q10", p31=["Q4167836"], p301=["Q20"]),
        "Q11": make_item("Q11", p31=["Q4167836"], p301=["Q21"]),
        "Q12": make_item("Q12", p31=["Q515"], p18=["Kassel.jpg"]),
        "Q20": make_item("Q20", p31=["Q25550691"], p18=["Rathaus Kassel.jpg"]),
        "Q21": make_item("Q21", p18=["Altar.jpg"]),
    })
    commons.add_file("File:Rathaus_Kassel.jpg", 20)
    commons.add_file("File:Altar.jpg", 21)
    commons.artworks.add("File:Altar.jpg")

    summary = runner.run(make_cfg(config.MODE_CATEGORY_SCAN), ctx)

    assert summary.added == 1
    edit = commons.edits[0]
    assert edit["id"] == "M20"
    assert "[[:d:Q20|]]" in edit["summary"]
    assert ctx.bot_log.contains(["Q20", "File:Rathaus_Kassel.jpg"])


@pytest.mark.unit
def test_unresolvable_file_is_skipped_and_run_continues(ctx, commons):
    commons.add_file("File:B.jpg", 2)
    summary = runner.submit_candidates(ctx, [Candidate("s", "Q1", "Missing.jpg"), Candidate("s", "Q2", "B.jpg")])

    assert summary.skipped == 1
    assert summary.added == 1


@pytest.mark.unit
def test_failed_write_is_counted(ctx, commons):
    commons.add_file("File:B.jpg", 2)
    commons.fail_edits = True
    summary = runner.submit_candidates(ctx, [Candidate("s", "Q2", "B.jpg")])
    assert summary.errors == 1
    assert summary.added == 0


@pytest.mark.unit
def test_structured_query_needs_sparql(ctx):
    ctx.sparql = None
    with pytest.raises(runner.BotError):
        runner.depicts_p18_and_free_page_image(ctx, "?q wdt:P31 wd:Q5", "de.wikipedia.org")


@pytest.fixture
def fatal_run(tmp_path, monkeypatch):
    """Run `runner.main` from an empty directory and leave the root logger as it was."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    level = root.level
    yield tmp_path
    for h in list(root.handlers):
        if isinstance(h, TqdmLoggingHandler):
            root.removeHandler(h)
    root.setLevel(level)


@pytest.mark.unit
def test_main_exits_1_without_credentials(fatal_run, monkeypatch):
    monkeypatch.setenv("DEPICTS_BOT_INI", str(fatal_run / "missing.ini"))

    with pytest.raises(SystemExit) as exc:
        runner.main()
    assert exc.value.code == 1


@pytest.mark.unit
def test_main_exits_1_on_malformed_query_answer(fatal_run, monkeypatch, ctx, sparql):
    sparql.payload = {"head": {"vars": ["q"]}}
    monkeypatch.setattr(runner, "build_config", lambda: make_cfg(config.MODE_STRUCTURED_QUERY))
    monkeypatch.setattr(runner.BotContext, "from_config", classmethod(lambda cls, cfg: ctx))

    with pytest.raises(SystemExit) as exc:
        runner.main()
    assert exc.value.code == 1
