"""traceview: span trees, timeline zoom and trace summaries for Zipkin traces."""
from __future__ import annotations

__version__ = "0.1.0"
