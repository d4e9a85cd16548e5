"""Certificate acquisition strategies and the engine that picks one."""
