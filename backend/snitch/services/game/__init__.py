"""Game domain services: quaffle generation and the rules engine.

This package contains pure domain logic that should be imported by HTTP
routes and socket handlers, keeping transport concerns separated from core
game mechanics.
"""
