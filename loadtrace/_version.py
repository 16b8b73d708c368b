"""Package version, kept in its own module so any submodule can import it."""

__version__ = "0.1.0"
