"""Graph store reads and the cascading source delete."""

import pytest

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.dal.sqlite import SqliteGraphStore
from schemagraph.dal.sqlite.database import utc_now
from schemagraph.ingestion.graph_ingestor import persist_snapshot
from schemagraph.schema.graph import GraphFilter
from schemagraph.schema.sources import SourceKind
from tests._support.snapshots import register_duckdb_source, shop_profiles, shop_snapshot

SETTINGS = CrawlerSettings()


async def _seed(database, source_id, path):
    await register_duckdb_source(database, source_id, path)
    await persist_snapshot(
        database,
        source_id,
        SourceKind.DUCKDB,
        shop_snapshot(),
        stats=shop_profiles(),
        settings=SETTINGS,
    )


async def _count(database, sql, params=()):
    async with database.connect() as conn:
        cursor = await conn.execute(sql, params)
        row = await cursor.fetchone()
    return row[0]


async def _attach_semantic_data(database, node_id, other_id):
    now = utc_now()
    async with database.transaction() as conn:
        await conn.execute(
            "INSERT INTO embeddings (id, owner_type, owner_id, vec, dim, model, updated_at) "
            "VALUES (?, 'node', ?, ?, 2, 'test-model', ?)",
            (f"emb_{node_id}", node_id, b"\x00\x00\x00\x00\x00\x00\x00\x00", now),
        )
        await conn.execute(
            "INSERT INTO semantic_relationships "
            "(id, source_node_id, target_node_id, confidence_score, created_at, updated_at) "
            "VALUES (?, ?, ?, 0.9, ?, ?)",
            (f"sem_{node_id}", node_id, other_id, now, now),
        )
        await conn.execute(
            "INSERT INTO edges (id, src_id, dst_id, type, props, created_at, updated_at) "
            "VALUES (?, ?, ?, 'SIMILAR_TO', NULL, ?, ?)",
            (f"edge_SIMILAR_TO_{node_id}", node_id, other_id, now, now),
        )


@pytest.mark.asyncio
async def test_cascade_removes_everything_the_source_owns(graph_db):
    await _seed(graph_db, "src_a", "/data/a.duckdb")
    await _seed(graph_db, "src_b", "/data/b.duckdb")
    email_a = "col_tbl_src_a_public_accounts_email"
    await _attach_semantic_data(graph_db, email_a, "col_tbl_src_b_public_accounts_email")
    store = SqliteGraphStore(graph_db)
    before_b = await store.get_graph(GraphFilter(source_ids=["src_b"]))

    counts = await store.delete_source_cascade("src_a")

    assert counts.sources == 1
    assert counts.source_nodes == 1
    assert counts.nodes == 6
    assert counts.embeddings == 1
    assert counts.semantic_edges == 2
    assert counts.edges == 7
    assert counts.provenance == 2
    assert counts.changelog == 2
    for table in ("nodes", "edges", "provenance", "embeddings"):
        column = "owner_id" if table in ("provenance", "embeddings") else "id"
        assert await _count(
            graph_db, f"SELECT COUNT(*) FROM {table} WHERE instr({column}, ?) > 0", ("src_a",)
        ) == 0
    assert await _count(graph_db, "SELECT COUNT(*) FROM semantic_relationships") == 0
    assert await _count(graph_db, "SELECT COUNT(*) FROM sources WHERE id = 'src_a'") == 0

    after_b = await store.get_graph(GraphFilter(source_ids=["src_b"]))
    assert after_b == before_b


@pytest.mark.asyncio
async def test_owner_named_like_another_source_survives_its_cascade(graph_db):
    await register_duckdb_source(graph_db, "src_a", "/data/a.duckdb", owners=("src_b",))
    await persist_snapshot(
        graph_db, "src_a", SourceKind.DUCKDB, shop_snapshot(), settings=SETTINGS
    )
    await _seed(graph_db, "src_b", "/data/b.duckdb")
    store = SqliteGraphStore(graph_db)
    before_a = await store.get_graph(GraphFilter(source_ids=["src_a"]))

    counts = await store.delete_source_cascade("src_b")

    assert counts.source_nodes == 1
    assert counts.nodes == 6
    source = await store.get_node("src_a")
    assert source.props["owners"] == ["src_b"]
    assert await store.get_graph(GraphFilter(source_ids=["src_a"])) == before_a


@pytest.mark.asyncio
async def test_cascade_of_unknown_source_deletes_nothing(graph_db):
    await _seed(graph_db, "src_a", "/data/a.duckdb")

    counts = await SqliteGraphStore(graph_db).delete_source_cascade("src_missing")

    assert counts.total == 0
    assert await _count(graph_db, "SELECT COUNT(*) FROM nodes") == 7


@pytest.mark.asyncio
async def test_get_graph_filters(graph_db):
    await _seed(graph_db, "src_a", "/data/a.duckdb")
    await _seed(graph_db, "src_b", "/data/b.duckdb")
    store = SqliteGraphStore(graph_db)

    everything = await store.get_graph()
    assert everything.stats.node_count == 14

    tables = await store.get_graph(GraphFilter(source_ids=["src_a"], node_types=["table"]))
    assert [node.id for node in tables.nodes] == [
        "tbl_src_a_public_accounts",
        "tbl_src_a_public_orders",
    ]
    assert tables.edges == []

    foreign_keys = await store.get_graph(
        GraphFilter(source_ids=["src_a"], edge_types=["FOREIGN_KEY"])
    )
    assert [edge.type for edge in foreign_keys.edges] == ["FOREIGN_KEY"]

    nodes_only = await store.get_graph(GraphFilter(source_ids=["src_b"], include_edges=False))
    assert nodes_only.edges == []
    assert all("src_b" in node.id for node in nodes_only.nodes)


@pytest.mark.asyncio
async def test_get_node(graph_db):
    await _seed(graph_db, "src_a", "/data/a.duckdb")
    store = SqliteGraphStore(graph_db)

    node = await store.get_node("tbl_src_a_public_accounts")

    assert node.props["comment"] == "Customer accounts"
    assert await store.get_node("nope") is None
