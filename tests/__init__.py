"""Test suite for provider_hub"""
