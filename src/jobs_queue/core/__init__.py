"""Interfaces (Protocols) the scheduler depends on."""
