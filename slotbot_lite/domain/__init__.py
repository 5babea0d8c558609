"""Availability engine and booking lifecycle."""
