"""REST API and status stream"""
