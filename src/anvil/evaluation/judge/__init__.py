"""LLM judge building blocks: prompts, context, score extraction, vote aggregation."""
