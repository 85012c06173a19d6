"""SysY compiler back end: IR, ARM code generation and linear-scan register allocation."""

__version__ = "0.1.0"