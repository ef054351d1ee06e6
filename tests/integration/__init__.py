"""
Integration tests for ivfann.

These tests run complete build/search cycles across every clustering
strategy, distance kind and engine.
"""
