"""Unit tests for the luma_renderer package."""
