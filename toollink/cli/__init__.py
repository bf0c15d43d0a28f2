"""ToolLink command-line interface."""
