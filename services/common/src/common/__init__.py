"""Shared configuration, database models and HTTP helpers."""
