"""Producers of candidate items: transcript extraction and frame sampling."""
