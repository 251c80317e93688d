"""
Centralized JSON Schema Loading Module.

This module is responsible for loading JSON schema files from disk and
exposing them as module-level constants for use throughout the application.

Design Principles:
    1. Load Once: Schemas are loaded at module import time, not on every use
    2. Fail Fast: Missing or invalid schemas cause immediate import failure
    3. Single Source: All schema access goes through this module

File Location:
    Schemas are expected to be in the same directory as this module
    (src/schema/). The path is resolved using __file__ to ensure
    it works regardless of the current working directory.

Error Handling:
    - FileNotFoundError: Schema file doesn't exist at expected path
    - json.JSONDecodeError: Schema file contains invalid JSON syntax
"""
import json
from pathlib import Path
from typing import Dict, Any

SCHEMA_DIR = Path(__file__).parent


def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """
    Load a JSON schema file from the schema directory.

    Args:
        schema_filename: Name of the JSON schema file (e.g., "webmention_schema.json")

    Returns:
        Parsed JSON schema as a dictionary, ready for use with jsonschema library

    Raises:
        FileNotFoundError: If the schema file doesn't exist at the expected location.
        json.JSONDecodeError: If the schema file exists but contains invalid JSON.

    Example:
        >>> schema = _load_schema("webmention_schema.json")
        >>> schema["$schema"]
        "http://json-schema.org/draft-07/schema#"
    """
    schema_path = SCHEMA_DIR / schema_filename

    if not schema_path.exists():
        raise FileNotFoundError(
            f"Schema file not found: {schema_path}. "
            f"Expected location: {SCHEMA_DIR}"
        )

    try:
        with open(schema_path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise json.JSONDecodeError(
            f"Invalid JSON in schema file {schema_filename}: {e.msg}",
            e.doc,
            e.pos
        ) from e


# Webmention Schema
# JSON Schema (Draft 7) for one stored webmention record: id, source, target,
# type, author card, sanitized content and timestamps
WEBMENTION_SCHEMA = _load_schema("webmention_schema.json")


def get_webmention_schema() -> Dict[str, Any]:
    """
    Get the webmention record JSON schema.

    Most code should use the direct import:
        from schema import WEBMENTION_SCHEMA

    Returns:
        Webmention JSON schema as a dictionary
    """
    return WEBMENTION_SCHEMA
