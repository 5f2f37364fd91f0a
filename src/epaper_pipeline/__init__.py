"""ePaper issue ingestion pipeline and article-clip model."""
