"""Local HTTP adapter over the license command surface."""
