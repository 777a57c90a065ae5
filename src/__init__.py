"""Flashdeck: spaced-repetition flashcard study bot."""
