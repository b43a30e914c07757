"""
Repository implementations: in-memory, PostgreSQL and the Midtrans gateway.
"""
