"""HTTP API for completion billing."""
