"""PrepCoach - live interview coaching from microphone audio."""

__version__ = "0.1.0"
