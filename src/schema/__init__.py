"""Schema Package - JSON Schema Loading and Validation.

This package provides centralized loading and access to JSON schemas
used throughout fedbridge for validating stored records.

Available Schemas:
    WEBMENTION_SCHEMA: JSON Schema for one received webmention record.
        Validated by WebmentionStore before a document is written.

Usage Patterns:
    from schema import WEBMENTION_SCHEMA
    validate(instance=record, schema=WEBMENTION_SCHEMA)
"""
from .schema import WEBMENTION_SCHEMA, get_webmention_schema

__all__ = ["WEBMENTION_SCHEMA", "get_webmention_schema"]
