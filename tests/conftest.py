"""Shared fixtures for flow engine tests."""

import json

import pytest

from flow_core import FlowStore
from tests.helpers import document, schema_node


@pytest.fixture
def store():
    return FlowStore()


@pytest.fixture
def chain_json():
    """A valid A -> B -> C document as JSON text."""
    return json.dumps(document(
        "A",
        schema_node("A", ["B"], label="Greeting", position=(0, 0)),
        schema_node("B", ["C"], label="Question", position=(0, 160)),
        schema_node("C", label="Farewell", position=(0, 320)),
    ))
