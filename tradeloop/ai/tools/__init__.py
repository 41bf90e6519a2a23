"""Model-facing tools: registry/dispatcher, market data tools and decision tools."""
