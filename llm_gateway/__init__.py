"""
LLM Gateway — routes chat completions to local and cloud LLM providers.

Subpackages:
- llm: prompt framing, history, cache, provider clients, routing, service
- config: YAML configuration schema and loader
- observability: structured logging and the interaction audit log
"""

__version__ = "0.1.0"
