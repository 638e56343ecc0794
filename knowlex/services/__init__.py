"""Application services for Knowlex."""
