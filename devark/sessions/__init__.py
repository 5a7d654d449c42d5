"""Session tracking, the unified session index, and summaries."""
