"""Notification channel implementations."""
