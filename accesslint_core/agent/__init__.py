"""Agent-side building blocks: context, tool-call logic, usage and providers."""
