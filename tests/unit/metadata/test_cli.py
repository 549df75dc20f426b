"""CLI commands against a temporary graph database."""

import json

import pytest

from schemagraph.metadata.cli import _parse_settings, build_parser, main


def _run(capsys, *argv):
    code = main(list(argv))
    return code, capsys.readouterr()


def test_parse_settings_reads_json_literals():
    assert _parse_settings(["port=5433", "ssl=true", "host=db.internal"]) == {
        "port": 5433,
        "ssl": True,
        "host": "db.internal",
    }


def test_parse_settings_requires_key_value():
    with pytest.raises(Exception, match="key=value"):
        _parse_settings(["novalue"])


def test_no_command_prints_help(capsys):
    code, captured = _run(capsys)
    assert code == 2
    assert "usage: schemagraph" in captured.out


def test_parser_collects_repeated_options():
    args = build_parser().parse_args(
        ["graph", "--source", "a", "--source", "b", "--node-type", "table", "--no-edges"]
    )
    assert args.source_ids == ["a", "b"]
    assert args.node_types == ["table"]
    assert args.include_edges is False


def test_migrate_reports_schema_version(capsys, graph_db_path):
    code, captured = _run(capsys, "--db", graph_db_path, "migrate")

    assert code == 0
    payload = json.loads(captured.out)
    assert payload["db_path"] == graph_db_path
    assert payload["schema_version"] >= 1


def test_crawl_without_sources_is_a_usage_error(capsys, graph_db_path):
    code, captured = _run(capsys, "--db", graph_db_path, "crawl")
    assert code == 2
    assert "Nothing to crawl" in captured.err


def test_unknown_source_fails(capsys, graph_db_path):
    code, _ = _run(capsys, "--db", graph_db_path, "delete-source", "src_missing")
    assert code == 1


def test_source_lifecycle(capsys, graph_db_path, tmp_path):
    pytest.importorskip("duckdb")
    from tests._support.warehouse import build_warehouse

    warehouse = build_warehouse(tmp_path / "warehouse.duckdb")
    db = ["--db", graph_db_path]

    code, captured = _run(
        capsys,
        *db,
        "add-source",
        "warehouse",
        "duck",
        "--set",
        f"file_path={warehouse}",
        "--id",
        "src_wh",
        "--owner",
        "data-team",
    )
    assert code == 0
    record = json.loads(captured.out)
    assert record["id"] == "src_wh"
    assert record["kind"] == "duckdb"
    assert record["owners"] == ["data-team"]

    code, _ = _run(capsys, *db, "add-source", "again", "duckdb", "--set", f"file_path={warehouse}")
    assert code == 1

    code, captured = _run(capsys, *db, "list-sources")
    assert [item["id"] for item in json.loads(captured.out)] == ["src_wh"]

    code, captured = _run(capsys, *db, "check", "src_wh")
    assert code == 0
    assert json.loads(captured.out)["status"] == "connected"

    code, _ = _run(capsys, *db, "crawl", "--all")
    assert code == 0

    code, captured = _run(capsys, *db, "graph", "--source", "src_wh", "--node-type", "table")
    graph = json.loads(captured.out)
    assert {node["id"] for node in graph["nodes"]} == {
        "tbl_src_wh_main_customers",
        "tbl_src_wh_main_invoices",
        "tbl_src_wh_main_active_customers",
    }
    assert graph["stats"]["node_count"] == 3

    code, captured = _run(capsys, *db, "delete-source", "src_wh")
    assert code == 0
    counts = json.loads(captured.out)
    assert counts["sources"] == 1
    assert counts["nodes"] == 10

    code, captured = _run(capsys, *db, "list-sources")
    assert json.loads(captured.out) == []
