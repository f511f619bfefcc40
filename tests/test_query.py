import asyncio
import unittest

from conceptgraph.errors import StoreError
from conceptgraph.graph.build import GraphBuilder
from conceptgraph.graph.community import CommunityDetector
from conceptgraph.graph.models import CommunitySummary
from conceptgraph.graph.query import (
    NEED_SPECIFIC,
    NO_CONCEPTS,
    SEARCH_FAILED,
    Retriever,
    best_excerpt,
    choose_mode,
    global_fallback,
    score_sentence,
)
from conceptgraph.graph.store import MemoryGraphStore

AI_DOC = (
    "Artificial intelligence enables automated reasoning. "
    "Artificial intelligence research keeps growing. "
    "Cooking pasta requires boiling water."
)


class _SpyStore(MemoryGraphStore):
    def __init__(self):
        super().__init__()
        self.calls = 0

    async def find_concepts_by_substring(self, *a, **kw):
        self.calls += 1
        return await super().find_concepts_by_substring(*a, **kw)

    async def find_documents_by_concepts(self, *a, **kw):
        self.calls += 1
        return await super().find_documents_by_concepts(*a, **kw)


class _DownStore(MemoryGraphStore):
    async def find_concepts_by_substring(self, *a, **kw):
        raise StoreError("connection refused")


class _UnreachableStore(MemoryGraphStore):
    async def find_concepts_by_substring(self, *a, **kw):
        raise ConnectionRefusedError("graph backend unreachable")


class _Summarizer:
    def __init__(self, fail=False, hang=False):
        self.fail = fail
        self.hang = hang

    async def summarize_communities(self, question, summaries):
        if self.hang:
            await asyncio.sleep(10)
        if self.fail:
            raise RuntimeError("model offline")
        return f"{len(summaries)} themes"


class TestModeSelection(unittest.TestCase):
    def test_global_indicators_win_when_more_frequent(self):
        self.assertEqual(choose_mode("What are the overall trends?"), "global")
        self.assertEqual(choose_mode("Give me an overview of the major trends"), "global")

    def test_ties_and_no_indicators_are_local(self):
        self.assertEqual(choose_mode("compare what"), "local")
        self.assertEqual(choose_mode("pasta recipes"), "local")
        self.assertEqual(choose_mode("Who founded the company?"), "local")

    def test_words_sharing_an_indicator_stem_are_not_indicators(self):
        self.assertEqual(choose_mode("Describe electricity generation"), "local")
        self.assertEqual(choose_mode("Which generator failed?"), "local")
        self.assertEqual(choose_mode("Summarize the generators in general"), "global")


class TestScoring(unittest.TestCase):
    def test_score_sentence_boost(self):
        self.assertEqual(score_sentence("graph databases", ["graph"], []), 2)
        # 2 + 2 + 1 = 5, boosted because it exceeds 2
        self.assertEqual(score_sentence("graph databases", ["graph", "databas"], ["graph"]), 7.5)

    def test_global_fallback_listing(self):
        text = global_fallback([CommunitySummary("component-0", 3, ["a", "b", "c"])])
        self.assertEqual(
            text,
            "Global overview: Found 1 communities in the knowledge graph:\n"
            "• component-0: 3 entities (examples: a, b, c)",
        )

    def test_best_excerpt_without_documents(self):
        self.assertIsNone(best_excerpt([], ["graph"], []))


class TestRetriever(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = MemoryGraphStore()
        await GraphBuilder(store=self.store).ingest_document("ai", AI_DOC)
        self.retriever = Retriever(store=self.store)

    async def test_local_search_picks_first_best_sentence(self):
        ans = await self.retriever.query("What is artificial intelligence?")
        self.assertEqual(ans.mode, "local")
        self.assertEqual(ans.excerpt, "Artificial intelligence enables automated reasoning.")
        self.assertEqual(ans.text, "Based on your documents: Artificial intelligence enables automated reasoning.")
        self.assertEqual([h.document.name for h in ans.documents], ["ai"])

    async def test_local_search_reports_connected_concepts(self):
        ans = await self.retriever.query("What is artificial intelligence?")
        first = ans.concepts[0].name
        linked = ans.connected[first]
        self.assertTrue(linked)
        self.assertLessEqual(len(linked), 3)
        self.assertNotIn(first, linked)
        self.assertEqual(ans.to_dict()["concepts"][0]["connected"], linked)

    async def test_unknown_terms(self):
        ans = await self.retriever.query("Explain quantum chromodynamics", "local")
        self.assertEqual(ans.text, NO_CONCEPTS)

    async def test_stop_word_only_question_never_touches_store(self):
        spy = _SpyStore()
        ans = await Retriever(store=spy).query("what is the")
        self.assertEqual(ans.text, NEED_SPECIFIC)
        self.assertEqual(spy.calls, 0)

    async def test_store_failure_yields_safe_answer(self):
        with self.assertLogs("conceptgraph.graph.query", level="ERROR"):
            ans = await Retriever(store=_DownStore()).query("artificial intelligence", "local")
        self.assertEqual(ans.text, SEARCH_FAILED)

    async def test_unreachable_backend_yields_safe_answer(self):
        with self.assertLogs("conceptgraph.graph.query", level="ERROR"):
            ans = await Retriever(store=_UnreachableStore()).query("artificial intelligence", "local")
        self.assertEqual(ans.text, SEARCH_FAILED)
        self.assertEqual(ans.mode, "local")

    async def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            await self.retriever.query("anything", "sideways")

    async def test_global_search_lists_communities(self):
        await CommunityDetector(store=self.store).detect()
        ans = await self.retriever.query("Give me an overview")
        self.assertEqual(ans.mode, "global")
        self.assertTrue(ans.text.startswith("Global overview: Found 1 communities"))
        self.assertEqual(len(ans.communities), 1)

    async def test_global_search_uses_summarizer(self):
        await CommunityDetector(store=self.store).detect()
        ans = await Retriever(store=self.store, summarizer=_Summarizer()).query("overall trends", "global")
        self.assertEqual(ans.text, "1 themes")

    async def test_global_search_survives_summarizer_failure(self):
        await CommunityDetector(store=self.store).detect()
        retriever = Retriever(store=self.store, summarizer=_Summarizer(fail=True))
        ans = await retriever.query("overall trends", "global")
        self.assertTrue(ans.text.startswith("Global overview:"))

    async def test_global_search_falls_back_when_summarizer_hangs(self):
        await CommunityDetector(store=self.store).detect()
        retriever = Retriever(store=self.store, summarizer=_Summarizer(hang=True), summarize_timeout_s=0.05)
        with self.assertLogs("conceptgraph.graph.query", level="WARNING"):
            ans = await retriever.query("overall trends", "global")
        self.assertTrue(ans.text.startswith("Global overview: Found 1 communities"))


if __name__ == "__main__":
    unittest.main()
