from . import generation, storyboards

__all__ = ["generation", "storyboards"]
