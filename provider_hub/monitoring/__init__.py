"""Monitoring module"""
