"""CarInsight conversational sales assistant."""
