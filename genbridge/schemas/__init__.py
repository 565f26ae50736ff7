"""
JSON schemas shipped with genbridge.

workflow_graph.json describes the executor's API-format graph: an object of
node ids mapping to {"class_type", "inputs"}. Reference and cycle checks are
done in code (genbridge.graph.graph_ops) since JSON Schema cannot express them.
"""

import os
import json
from functools import lru_cache

import jsonschema

SCHEMA_DIR = os.path.dirname(os.path.abspath(__file__))


def get_schema_path(schema_name):
    """Absolute path of a packaged schema, by name without extension."""
    return os.path.join(SCHEMA_DIR, f"{schema_name}.json")


@lru_cache(maxsize=None)
def load_schema(schema_name):
    """
    Load a packaged schema. Schemas are read once per process.

    Args:
        schema_name (str): Name of the schema file without extension

    Returns:
        dict: The schema
    """
    with open(get_schema_path(schema_name), 'r', encoding='utf-8') as f:
        return json.load(f)


def validate_instance(instance, schema_name):
    """
    Validate data against a packaged schema.

    Raises:
        jsonschema.exceptions.ValidationError: If the data does not match
    """
    jsonschema.validate(instance=instance, schema=load_schema(schema_name))
