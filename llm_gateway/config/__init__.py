"""Gateway configuration: pydantic schema and YAML loader."""
