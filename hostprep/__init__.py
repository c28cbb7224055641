"""hostprep — provision Linux workstations and servers."""

__version__ = "0.1.0"
