"""Site generator adapters."""

from .command import CommandGenerator, Generator, GeneratorError, GeneratorResult

__all__ = ["CommandGenerator", "Generator", "GeneratorError", "GeneratorResult"]
