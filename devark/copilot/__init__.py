"""Prompt scoring, enhancement, goal inference, and response coaching."""
