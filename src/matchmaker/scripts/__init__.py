"""Scripts ejecutables (python -m matchmaker.scripts.<nombre>)."""
