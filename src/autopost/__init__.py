"""autopost — RSS feeds rewritten by an LLM and published to a blog, exactly once."""

__version__ = "0.3.0"
