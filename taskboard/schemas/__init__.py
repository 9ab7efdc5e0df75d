"""
Taskboard Backend — Pydantic Schemas
======================================

What:  Request/response models defining the HTTP contract.
How:   Kept separate from the ORM models so the API exposes exactly the
       fields it means to (an invite token, for instance, is only returned
       to the owner who issued it).
"""
