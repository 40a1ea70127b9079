"""Weather evaluation, conflict scanning and advisory services."""
