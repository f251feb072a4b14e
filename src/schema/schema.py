"""
JSON schemas bundled with blogwatch.

Schema files live next to this module and are parsed once, when the module
is imported, so a missing or broken file stops the daemon at startup rather
than on the first webmention.
"""
import json
from pathlib import Path
from typing import Dict, Any

SCHEMA_DIR = Path(__file__).parent


def load_schema(schema_filename: str) -> Dict[str, Any]:
    """
    Parse a bundled JSON schema.

    Args:
        schema_filename: File name inside the schema package, e.g. "notification_schema.json"

    Returns:
        The schema as a dictionary, suitable for ``jsonschema.validate``

    Raises:
        FileNotFoundError: If no such schema is bundled
        ValueError: If the file is not valid JSON
    """
    schema_path = SCHEMA_DIR / schema_filename
    try:
        text = schema_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"Schema file not found: {schema_path}") from None

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(
            f"Invalid JSON in schema file {schema_filename} "
            f"(line {e.lineno}, column {e.colno}): {e.msg}"
        ) from e


# Accepted inbound webmention awaiting verification
NOTIFICATION_SCHEMA = load_schema("notification_schema.json")
