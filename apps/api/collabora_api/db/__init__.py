"""Persistence layer: models, engine, repositories."""
