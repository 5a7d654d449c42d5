"""Reducer store and the message bridge feeding it."""
