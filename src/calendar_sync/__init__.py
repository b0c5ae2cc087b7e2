"""Google Calendar synchronization: recurrence-scope mutations and push
notification channel lifecycle."""

__version__ = "0.1.0"
