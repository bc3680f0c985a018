"""godiagram: live struct diagrams for Go source trees, with round-trip editing."""

__version__ = "0.1.0"
