"""Focus synthesis: prioritized focus areas from profile and patterns."""

from src.focus.synthesizer import FocusSynthesizer, prune_focus_runs, weeks_to_breakthrough

__all__ = ["FocusSynthesizer", "prune_focus_runs", "weeks_to_breakthrough"]
