"""Tool-calling trading agent: model clients, conversation, tools and the agent loop."""
