"""audit/ -- Append-only change log for mutating operations.

Layer rule: audit/ may import from auth/ (actor resolution) and core/.
It does NOT import from api/.
"""
