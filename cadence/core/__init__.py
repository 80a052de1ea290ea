"""
Core module for Cadence.
Configuration, logging, the intent data model, and the dispatch runtime.
"""
