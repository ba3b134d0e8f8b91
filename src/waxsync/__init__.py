"""waxsync - bulk catalog synchronization for a vinyl collection tracker."""

__version__ = "0.1.0"
