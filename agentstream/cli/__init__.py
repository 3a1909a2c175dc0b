"""Command line tools for agentstream."""
