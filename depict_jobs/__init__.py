"""Background job queues and workers for Carbon Depict."""

__version__ = "1.0.0"
