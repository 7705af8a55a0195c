"""Repository layer: DB access helpers.

client.py adapts a DB-API connection, pdox.py is the query helper, kvs_repo.py
the JSON key/value store built on top of it.
"""
