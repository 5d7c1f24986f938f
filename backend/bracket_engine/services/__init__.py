"""
Bracket Engine Services

Pure business logic services that:
- Accept domain inputs (IDs, sessions, shapes, seeding tables)
- Return result objects carrying violations instead of raising
- Do NOT depend on HTTP request/response objects
- Do NOT mutate data unless explicitly designed to
"""
