"""Tests for ccbridge."""
