"""YAML manifest parsing for declared brokers.

A manifest holds one broker, either at the top level or under a
``broker`` key::

    broker:
      broker_name: orders
      engine_type: ActiveMQ
      engine_version: "5.17.6"
      host_instance_type: mq.t3.micro
      users:
        - username: app
          password: correct-horse-battery
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError
from .models import BrokerSpec


def parse_manifest(data: Any) -> BrokerSpec:
    """
    Build a broker declaration from parsed manifest data.

    Only the shape is checked here; call
    :func:`~mq_reconciler.validation.validate_broker_spec` for the full rules.

    Raises:
        ValidationError: If the data is not a mapping or a field is missing or malformed
    """
    if not isinstance(data, dict):
        raise ValidationError("manifest", type(data).__name__, "Must be a mapping")
    if "broker" in data:
        data = data["broker"]
        if not isinstance(data, dict):
            raise ValidationError("broker", type(data).__name__, "Must be a mapping")

    try:
        return BrokerSpec.from_dict(data)
    except KeyError as e:
        raise ValidationError(str(e.args[0]), None, "Field is required") from e
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError("manifest", None, str(e)) from e


def manifest_from_yaml(yaml_str: str) -> BrokerSpec:
    """Parse a manifest from a YAML string."""
    try:
        data = yaml.safe_load(yaml_str)
    except yaml.YAMLError as e:
        raise ValidationError("manifest", None, f"Invalid YAML: {e}") from e
    return parse_manifest(data)


def load_manifest(path: str | Path) -> BrokerSpec:
    """Read and parse a manifest file."""
    return manifest_from_yaml(Path(path).read_text())
