"""Archive intake: turns uploaded ZIP dumps into fiches and their documents."""

__version__ = "0.1.0"
