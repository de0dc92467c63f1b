"""Vigil backend: chat processing and scheduled daily-quote notifications."""
