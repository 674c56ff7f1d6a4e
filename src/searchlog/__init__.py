"""Search Logger - local endpoint that records browser searches into an Obsidian note."""

__version__ = "0.3.0"
