"""
placeops - administration console for a hierarchical facilities directory.

The console drives a remote management shell through one persistent
process, parses what it prints into typed place entities, and keeps a local
mirror of the Building → Floor → Section → Desk/Room hierarchy in sync.

Packages:
    placeops.core      Errors, logging, settings
    placeops.channel   Persistent shell process + result classifier
    placeops.places    Entity model, parser, hierarchy builder, reconciler
    placeops.mirror    SQLAlchemy-backed local mirror and status tables
    placeops.ops       Operation functions used by the API and CLI
    placeops.api       FastAPI application
    placeops.cli       Typer command line
"""

__version__ = "0.1.0"
