"""QueueEase queue engine."""
