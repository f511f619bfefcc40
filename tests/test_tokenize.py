import unittest

from conceptgraph.graph.tokenize import Tokenizer, normalize, split_sentences, words


class TestTokenize(unittest.TestCase):
    def test_words_strip_punctuation(self):
        self.assertEqual(words("Hello, World! (graphs)"), ["hello", "world", "graphs"])

    def test_normalize_drops_stop_words_and_noise(self):
        tokens = Tokenizer(stem=False).normalize("The quick brown foxes are running 42 times at 7")
        self.assertEqual(tokens, ["quick", "brown", "foxes", "running", "times"])

    def test_normalize_stems_by_default(self):
        self.assertEqual(normalize("running foxes"), ["run", "fox"])

    def test_stop_word_only_text(self):
        self.assertEqual(normalize("what is the"), [])
        self.assertEqual(Tokenizer(stem=False).normalize("The THE the"), [])

    def test_split_sentences_keeps_terminators(self):
        self.assertEqual(
            split_sentences("First one. Second one! Third?\nFourth"),
            ["First one.", "Second one!", "Third?", "Fourth"],
        )


if __name__ == "__main__":
    unittest.main()
