import unittest

from conceptgraph.graph.build import GraphBuilder
from conceptgraph.graph.community import CommunityDetector
from conceptgraph.graph.query import Retriever
from conceptgraph.graph.sqlite_graph import SqliteGraphStore


class TestSqliteGraphStore(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = SqliteGraphStore(":memory:")

    async def asyncTearDown(self):
        await self.store.close()

    async def test_upsert_concept_merges(self):
        await self.store.upsert_concept("graph", 2)
        node = await self.store.upsert_concept("graph", 3)
        self.assertEqual(node.frequency, 5)
        self.assertEqual(node.kind, "concept")

    async def test_entity_upgrade(self):
        await self.store.upsert_concept("python", 2)
        node = await self.store.upsert_concept(
            "python", 1, {"kind": "entity", "type": "TECHNOLOGY", "description": "A language"}
        )
        self.assertEqual((node.kind, node.type, node.description), ("entity", "TECHNOLOGY", "A language"))
        self.assertEqual(node.frequency, 3)

    async def test_related_edge_sorted_key(self):
        await self.store.upsert_concept("alpha", 1)
        await self.store.upsert_concept("beta", 1)
        self.assertEqual(await self.store.upsert_related_edge("beta", "alpha", 2), 2)
        self.assertEqual(await self.store.upsert_related_edge("alpha", "beta", 1), 3)
        self.assertEqual(await self.store.list_related_edges(), [("alpha", "beta", 3)])
        self.assertEqual(await self.store.neighbors("beta"), [("alpha", 3)])

    async def test_end_to_end(self):
        builder = GraphBuilder(store=self.store)
        await builder.ingest_document("graphs", "Graph databases store graph relationships. Graph queries are fast.")
        await builder.ingest_document("cooking", "Pasta recipes need boiling water. Pasta sauces vary.")

        self.assertEqual(await self.store.count_nodes_by_label("document"), 2)
        self.assertEqual(await CommunityDetector(store=self.store).detect(), 2)

        ans = await Retriever(store=self.store).query("Tell me about pasta", "local")
        self.assertEqual([h.document.name for h in ans.documents], ["cooking"])
        self.assertEqual(ans.excerpt, "Pasta recipes need boiling water.")

        await builder.clear()
        self.assertEqual(await self.store.count_nodes_by_label("node"), 0)
        self.assertEqual(await self.store.count_edges_by_type("contains"), 0)


if __name__ == "__main__":
    unittest.main()
