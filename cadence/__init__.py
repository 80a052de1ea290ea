"""
Cadence - command interpretation and dispatch runtime.

Turns free-form user text into a typed intent decision, gates risky or
uncertain decisions behind confirmation, and routes approved decisions to
capability handlers.
"""
__version__ = "0.1.0"
