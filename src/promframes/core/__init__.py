"""Core domain: models, ports and the query pipeline."""
