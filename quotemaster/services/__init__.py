"""
services/ — Pricing engine, workflow and storage.

Pure computation (pricing, variance, permissions, access_scope) has no
database access; storage.QuotationRepository is the only module that
queries the database.
"""
