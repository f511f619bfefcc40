"""conceptgraph: concept co-occurrence graphs with local/global question answering."""

__version__ = "0.1.0"
