"""Core runtime: provider interface, conversation engine, tool execution and limits."""
