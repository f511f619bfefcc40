import unittest

from conceptgraph.graph.extract import ConceptExtractor, norm_entity
from conceptgraph.graph.tokenize import Tokenizer


def _extractor(**kw) -> ConceptExtractor:
    return ConceptExtractor(tokenizer=Tokenizer(stem=False), **kw)


class TestGraphExtract(unittest.TestCase):
    def test_norm_entity(self):
        self.assertEqual(norm_entity("  New   York "), "new york")

    def test_extract_keeps_repeated_or_long_tokens(self):
        concepts = _extractor().extract(["alpha", "beta", "beta", "gamma", "cat", "cat", "dog"])
        self.assertEqual([c.name for c in concepts], ["beta", "cat", "alpha", "gamma"])
        self.assertEqual([c.frequency for c in concepts], [2, 2, 1, 1])

    def test_extract_caps_concepts(self):
        concepts = _extractor(max_concepts=2).extract(["alpha", "beta", "beta", "gamma", "cat", "cat"])
        self.assertEqual([c.name for c in concepts], ["beta", "cat"])

    def test_extract_text_is_deterministic(self):
        text = "Graph databases store graph data. Graph queries traverse relationships. Databases scale."
        ex = _extractor()
        first = ex.extract_text(text)
        self.assertEqual(first, ex.extract_text(text))
        self.assertEqual(first[0].name, "graph")
        self.assertEqual(first[0].frequency, 3)
        self.assertEqual(first[1].name, "databases")
        self.assertNotIn("data", [c.name for c in first])

    def test_phrases_need_two_occurrences(self):
        text = "Machine learning models. Machine learning systems! Deep networks."
        phrases = _extractor().extract_phrases(text)
        self.assertEqual([(p.name, p.frequency) for p in phrases], [("machine learning", 2)])

    def test_phrases_skip_stop_words_and_numbers(self):
        text = "The budget of the city. The budget of the city. 2024 forecast. 2024 forecast."
        self.assertEqual(_extractor().extract_phrases(text), [])

    def test_phrases_follow_single_words(self):
        text = "Machine learning models. Machine learning systems."
        concepts = _extractor().extract_text(text)
        self.assertEqual(concepts[-1].name, "machine learning")
        self.assertEqual(_extractor(phrases=False).extract_text(text)[-1].name, "systems")

    def test_stemming_merges_word_forms(self):
        ex = ConceptExtractor(tokenizer=Tokenizer(stem=True))
        concepts = ex.extract_text("Networks network networking")
        self.assertEqual(len([c for c in concepts if " " not in c.name]), 1)
        self.assertEqual(concepts[0].frequency, 3)


if __name__ == "__main__":
    unittest.main()
