"""
Taskboard Backend — Services Layer
====================================

Service Inventory:
    - membership.py:            MembershipGuard (authorization predicates)
    - invite_service.py:        InviteService (invite ledger and state machine)
    - notification_service.py:  NotificationService (dedup'd notify + inbox)
    - hooks.py:                 Mutation hooks (task/invite writes → notify)
    - reminder_scanner.py:      ReminderScanner + APScheduler job
    - delivery.py:              Delivery sinks and the post-commit outbox
    - project_service.py:       ProjectService (thin CRUD)
    - task_service.py:          TaskService (thin CRUD, fires the hooks)

Services are stateless singletons; every method receives the request's
AsyncSession and leaves the commit to get_db_session(). The one exception
is InviteService persisting an observed expiry before raising ExpiredError.
"""
