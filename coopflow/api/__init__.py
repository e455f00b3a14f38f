"""HTTP API for the coopflow approval workflow."""
