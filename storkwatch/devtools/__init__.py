"""Developer tooling: fakes of external services for local runs and tests."""
