"""Multi-provider generation orchestration for staged artifact workflows."""

__version__ = "0.1.0"
