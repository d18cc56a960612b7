"""Filter composition, grouping, progress, and dependency gating for task lists."""
