"""External store integrations:
- PostgREST / Supabase data store
- HTTP client abstraction
"""
