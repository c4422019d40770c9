"""fetchcache: fetch a URI once, keep its HTML, let anyone poll for it."""

__version__ = "0.1.0"
