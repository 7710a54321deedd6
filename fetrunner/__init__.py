"""Run FET timetable generation in parallel, relaxing constraints step by step."""

__version__ = "0.1.0"