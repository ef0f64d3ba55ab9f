"""
schemas/ — Pydantic request models for the QuoteMaster API

Provides input validation, auto-generated OpenAPI docs, and
consistent {field, message} errors across all endpoints.
"""
