"""todo-sync: optimistic, realtime-reconciled task list with LLM enrichment."""

__version__ = "0.1.0"
