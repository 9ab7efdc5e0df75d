"""
Taskboard Backend — API Routes Package
========================================

Route Inventory:
    - projects.py:       /api/projects (CRUD, members, owner-side invites)
    - invites.py:        /api/invites (preview, accept, reject, my invites)
    - tasks.py:          /api/tasks (thin CRUD firing the mutation hooks)
    - notifications.py:  /api/notifications (inbox)
    - health.py:         /health

Routes are thin: they resolve the principal, call one service method and wrap
the result in the {"success": true, "data": ...} envelope. Business rules
live in services/.
"""
