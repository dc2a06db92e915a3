"""groundwork - discover, render and merge project guides, resumably."""

__version__ = "0.1.0"
