"""HTTP surface for stepflow (FastAPI)."""
