"""TinyApp Factory -- scaffold, build, finish and publish tiny portable apps."""

__version__ = "0.1.0"
