"""
API Territoires - French territorial entity resolution service

Resolves free-text names of regions, departements, communes and
groupements to their official INSEE/SIREN codes, one at a time or
in asynchronous batches.
"""

__version__ = "0.1.0"
