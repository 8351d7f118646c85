"""OliveFlow: olive mill box inventory and session settlement service."""

__version__ = "0.1.0"
