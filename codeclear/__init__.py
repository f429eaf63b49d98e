"""codeclear: find unreachable declarations, rank their deletion risk and remove them safely."""

__version__ = "0.3.0"
