"""
Backend package for the company directory API.

Authenticated users register a company profile and manage the services and
job offers published under it. Persistence is pluggable: SQLAlchemy,
Firestore, or an in-memory store for development.
"""
