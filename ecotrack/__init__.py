"""
EcoTrack backend package.

A FastAPI service for community sustainability challenges, tips and events,
backed by a pluggable document store (MongoDB, SQLAlchemy or in-memory) and
Firebase identity tokens.
"""
