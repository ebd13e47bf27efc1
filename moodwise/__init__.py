"""MoodWise - mood tracking, journaling and an AI wellness companion."""

__version__ = "0.1.0"
