"""Top-level Shadow Secret commands, discovered by the dispatcher."""
