"""Turn-bounded LLM trading agent.

Submodules:
- ai:          agent loop, model providers, tool registry and tools
- market_data: exchange providers and the TTL / single-flight kline cache
- indicators:  indicator series and warm-up alignment
- persistence: decision history store and prompt context builder
- automation:  orchestrator and CLI
"""

__version__ = "0.1.0"
