"""Backend abstraction and process orchestration for CLI agents.

A request is mapped to one backend's argument dialect, run as a child
process with a wall-clock budget, and retried at most once on the other
backend. Buffered, streaming and batch entry points share the same
adapter and executor pair.
"""
