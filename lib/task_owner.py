# =============================================================================
# lib/task_owner.py - Task Ownership
# =============================================================================
# Background jobs queued for a user get an id that starts with the user's
# id ("<user_id>.<uuid4>"), so the status endpoints can tell whose job it
# is without a lookup. Jobs queued by beat or by the webhook have plain
# Celery ids and no owner; only admins may read those.
# =============================================================================

import uuid

SEPARATOR = "."


def new_task_id(owner_id: str) -> str:
    """Celery task id carrying its owner. Pass it as apply_async(task_id=...)."""
    return f"{owner_id}{SEPARATOR}{uuid.uuid4()}"


def task_owner(task_id: str) -> str | None:
    owner, sep, _ = task_id.rpartition(SEPARATOR)
    return owner if sep and owner else None


def can_read_task(task_id: str, user_id: str, is_admin: bool = False) -> bool:
    """Admins read every task; users only the ones queued for them."""
    if is_admin:
        return True
    return task_owner(task_id) == str(user_id)
